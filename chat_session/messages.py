"""Conversation entries and wire-level usage accounting."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

STREAMING_SENTINEL = "...STREAMING"
STOP_NOTICE = "⏹️ Streaming stopped by user."
ERROR_NOTICE_PREFIX = "⚠️ LLM backend not responding."


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class TokenUsage(BaseModel):
    """Token accounting reported by the completion endpoint."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    prompt_tokens: int = Field(0, description="Tokens consumed by the prompt.")
    completion_tokens: int = Field(0, description="Tokens generated in the reply.")
    total_tokens: int = Field(0, description="Prompt plus completion tokens.")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Message:
    """One immutable entry of the conversation history.

    Updates never mutate an entry in place; the engine swaps in a copy built
    with :meth:`with_content` or :meth:`with_usage`.
    """

    role: Role
    content: str
    attachments: Tuple[str, ...] = ()
    timestamp: str = field(default_factory=_now)
    usage: Optional[TokenUsage] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str, attachments: Tuple[str, ...] = ()) -> "Message":
        return cls(role=Role.USER, content=content, attachments=tuple(attachments))

    @classmethod
    def placeholder(cls) -> "Message":
        return cls(role=Role.ASSISTANT, content=STREAMING_SENTINEL)

    @property
    def is_streaming(self) -> bool:
        return self.role is Role.ASSISTANT and self.content == STREAMING_SENTINEL

    def with_content(self, content: str) -> "Message":
        return replace(self, content=content)

    def with_usage(self, usage: Optional[TokenUsage]) -> "Message":
        return replace(self, usage=usage)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.attachments:
            payload["attachments"] = list(self.attachments)
        if self.usage is not None:
            payload["usage"] = self.usage.model_dump()
        return payload
