"""Transport for chat-completions requests."""

from __future__ import annotations

import logging
from typing import ContextManager, Dict, Iterator, Optional

import requests

from .cancellation import CancellationToken
from .config import SessionConfig
from .payload import build_headers
from .transport import AbortableAdapter, abort_on_cancel

logger = logging.getLogger(__name__)


class ChatLLMClient:
    """Thin wrapper around a chat-completions endpoint with streaming support."""

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self.http = session or requests.Session()
        adapter = AbortableAdapter()
        self.http.mount("https://", adapter)
        self.http.mount("http://", adapter)

    def abort_on_cancel(self, cancel_token: CancellationToken) -> ContextManager[None]:
        """Shut down sockets opened inside the block once ``cancel_token`` fires.

        Enter it before dispatching so a cancel interrupts a request still
        waiting for headers as well as a stalled body read.
        """
        return abort_on_cancel(cancel_token)

    def open_completion(self, config: SessionConfig, payload: Dict[str, object]) -> requests.Response:
        """Dispatch ``payload`` and return the response with its body unread."""
        logger.info(
            "Requesting chat completion from %s using model %s (%d message(s))",
            config.chat_completions_url,
            config.model or "<default>",
            len(payload.get("messages") or []),
        )
        response = self.http.post(
            config.chat_completions_url,
            json=payload,
            headers=build_headers(config.api_key),
            stream=True,
            timeout=config.request_timeout,
        )
        response.raise_for_status()
        return response

    @staticmethod
    def has_incremental_body(response: requests.Response) -> bool:
        """True when the transport exposes the body as a readable stream."""
        return response.status_code != 204 and getattr(response, "raw", None) is not None

    @staticmethod
    def iter_chunks(response: requests.Response) -> Iterator[bytes]:
        """Yield raw body chunks as they arrive."""
        for chunk in response.iter_content(chunk_size=None):
            if chunk:
                yield chunk

    @staticmethod
    def read_json(response: requests.Response) -> Dict[str, object]:
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        return data

    def close(self) -> None:
        self.http.close()
