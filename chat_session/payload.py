"""Translate compacted history into the chat-completions wire payload."""

from __future__ import annotations

import base64
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence, Union

from .config import SessionConfig
from .messages import STREAMING_SENTINEL, Message, Role

DEFAULT_MIME_TYPE = "application/octet-stream"

_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
)


@dataclass(frozen=True)
class Attachment:
    """Binary blob plus the MIME type used when it is inlined as a data URI."""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    @classmethod
    def from_path(cls, path: Union[str, os.PathLike]) -> "Attachment":
        file_path = Path(path)
        data = file_path.read_bytes()
        mime_type, _ = mimetypes.guess_type(file_path.name)
        return cls(data=data, mime_type=mime_type or sniff_mime_type(data))

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


AttachmentLike = Union[Attachment, bytes, str, os.PathLike]


def sniff_mime_type(data: bytes) -> str:
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    for signature, mime_type in _SIGNATURES:
        if data.startswith(signature):
            return mime_type
    return DEFAULT_MIME_TYPE


def encode_attachment(blob: AttachmentLike) -> str:
    """Return ``blob`` as a data URI.

    Accepts an :class:`Attachment`, raw bytes, an existing ``data:`` URI or a
    filesystem path.
    """
    if isinstance(blob, Attachment):
        return blob.to_data_uri()
    if isinstance(blob, (bytes, bytearray)):
        data = bytes(blob)
        return Attachment(data=data, mime_type=sniff_mime_type(data)).to_data_uri()
    if isinstance(blob, str) and blob.startswith("data:"):
        return blob
    if isinstance(blob, (str, os.PathLike)):
        return Attachment.from_path(blob).to_data_uri()
    raise TypeError(f"Unsupported attachment type: {type(blob).__name__}")


def _message_content(message: Message) -> Union[str, List[Dict[str, object]]]:
    if message.role is not Role.USER or not message.attachments:
        return message.content

    parts: List[Dict[str, object]] = []
    if message.content.strip():
        parts.append({"type": "text", "text": message.content})
    for data_uri in message.attachments:
        parts.append({"type": "image_url", "image_url": {"url": data_uri}})
    return parts


def build_messages(history: Sequence[Message]) -> List[Dict[str, object]]:
    """Wire messages for ``history``, excluding the streaming placeholder."""
    entries = list(history)
    if entries and entries[-1].is_streaming:
        entries.pop()
    return [
        {"role": message.role.value, "content": _message_content(message)}
        for message in entries
        if message.content != STREAMING_SENTINEL
    ]


def build_payload(config: SessionConfig, history: Sequence[Message]) -> Dict[str, object]:
    return {
        "model": config.model,
        "messages": build_messages(history),
        "stream": True,
    }


def build_headers(api_key: str) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers
