"""Configuration objects for the chat session engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SessionConfig:
    """Connection and memory settings supplied to each send."""

    base_url: str = "http://localhost:8000/v1"
    api_key: str = ""
    model: str = ""
    system_prompt: str = ""
    chat_memory_turns: int = 10
    request_timeout: Optional[float] = None

    @property
    def chat_completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    @property
    def models_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/models"
