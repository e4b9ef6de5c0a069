"""Chat session engine for OpenAI-compatible chat completion APIs.

The package keeps a bounded conversation history, sends it to a
``/chat/completions`` endpoint and assembles the streamed (or plain JSON)
reply into the history while supporting cooperative cancellation. The
primary entry point is ``chat_session.service.ChatSession``; an interactive
terminal client lives in ``chat_session.cli``.
"""

from .cancellation import CancellationToken
from .config import SessionConfig
from .exceptions import ChatSessionError, SessionBusyError
from .messages import STREAMING_SENTINEL, Message, Role, TokenUsage
from .payload import Attachment
from .service import ChatSession, SessionState

__all__ = [
    "Attachment",
    "CancellationToken",
    "ChatSession",
    "ChatSessionError",
    "Message",
    "Role",
    "STREAMING_SENTINEL",
    "SessionBusyError",
    "SessionConfig",
    "SessionState",
    "TokenUsage",
]
