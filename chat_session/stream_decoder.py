"""Incremental decoding of chat-completion response bodies.

Backends differ in how they frame a streamed reply. OpenAI-style servers send
server-sent events (``data: {...}`` lines terminated by ``data: [DONE]``),
some local servers emit one bare JSON object per line, and a few ignore the
``stream`` flag entirely and answer with a single JSON object that may lack a
trailing newline. :class:`StreamDecoder` accepts raw byte chunks as they are
read and yields the JSON records it can recover from any of those shapes.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .messages import TokenUsage

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"

Record = Dict[str, Any]


def _looks_like_object(text: str) -> bool:
    return text.startswith("{") and text.endswith("}")


def _parse_record(text: str) -> Optional[Record]:
    try:
        record = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed stream record: %.200s", text)
        return None
    if not isinstance(record, dict):
        logger.debug("Skipping non-object stream record: %.200s", text)
        return None
    return record


class StreamDecoder:
    """Line-reassembling decoder for one response body."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> List[Record]:
        """Consume ``chunk`` and return the records completed by it."""
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")

        records: List[Record] = []
        for line in lines:
            record = self._classify(line)
            if record is not None:
                records.append(record)
        return records

    def finish(self) -> Optional[Record]:
        """Parse whatever is left once the body is exhausted."""
        self._buffer += self._decoder.decode(b"", final=True)
        leftover = self._buffer.strip()
        self._buffer = ""
        if not _looks_like_object(leftover):
            return None
        return _parse_record(leftover)

    @staticmethod
    def _classify(line: str) -> Optional[Record]:
        trimmed = line.strip()
        if trimmed.startswith(DATA_PREFIX):
            body = trimmed[len(DATA_PREFIX):].strip()
            if not body or body == DONE_MARKER:
                return None
            return _parse_record(body)
        if _looks_like_object(trimmed):
            return _parse_record(trimmed)
        return None


def _first_choice(record: Record) -> Dict[str, Any]:
    choices = record.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return {}
    return choices[0]


def extract_fragment(record: Record) -> Optional[str]:
    """Text carried by ``record``; ``delta`` wins over ``message``."""
    choice = _first_choice(record)
    for key in ("delta", "message"):
        part = choice.get(key)
        if isinstance(part, dict) and part.get("content") is not None:
            return str(part["content"])
    return None


def extract_message(record: Record) -> Optional[str]:
    """Full-message text of a non-streamed ``record``."""
    message = _first_choice(record).get("message")
    if isinstance(message, dict) and message.get("content"):
        return str(message["content"])
    return None


def extract_usage(record: Record) -> Optional[TokenUsage]:
    usage = record.get("usage")
    if not isinstance(usage, dict):
        return None
    try:
        return TokenUsage.model_validate(usage)
    except ValidationError:
        logger.debug("Ignoring malformed usage object: %s", usage)
        return None
