"""
Shared fixtures for chat session tests.

Provides a fake ``requests`` response that replays body chunks, and helpers
to build a ChatSession wired to a mocked ``requests.Session``.
"""

import json
from dataclasses import replace
from typing import Callable, Iterable, List, Optional
from unittest.mock import MagicMock

import pytest
import requests

from chat_session.config import SessionConfig
from chat_session.llm_client import ChatLLMClient
from chat_session.service import ChatSession


class FakeResponse:
    """Stand-in for ``requests.Response`` with a scripted body."""

    def __init__(
        self,
        chunks: Iterable[bytes] = (),
        *,
        json_body: Optional[object] = None,
        status_code: int = 200,
        streaming: bool = True,
    ) -> None:
        self._chunks: List[bytes] = list(chunks)
        self._json_body = json_body
        self.status_code = status_code
        self.reason = "OK" if status_code < 400 else "Error"
        self.ok = status_code < 400
        self.raw = object() if streaming else None
        self.encoding = None
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=self)

    def iter_content(self, chunk_size=None):
        yield from self._chunks

    def json(self):
        if self._json_body is None:
            raise ValueError("No JSON body")
        return self._json_body

    def close(self) -> None:
        self.closed = True


def sse(*records: object, done: bool = True) -> List[bytes]:
    """Encode records as ``data:`` lines, one chunk per record."""
    chunks = [f"data: {json.dumps(record)}\n".encode("utf-8") for record in records]
    if done:
        chunks.append(b"data: [DONE]\n")
    return chunks


def delta(text: str) -> dict:
    return {"choices": [{"delta": {"content": text}}]}


@pytest.fixture
def config() -> SessionConfig:
    return SessionConfig(base_url="http://llm.local/v1", api_key="sk-test", model="test-model", chat_memory_turns=10)


@pytest.fixture
def http() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def make_session(http, config) -> Callable[..., ChatSession]:
    def factory(response: Optional[FakeResponse] = None, **overrides) -> ChatSession:
        if response is not None:
            http.post.return_value = response
        session_config = replace(config, **overrides)
        return ChatSession(session_config, client=ChatLLMClient(session=http))

    return factory
