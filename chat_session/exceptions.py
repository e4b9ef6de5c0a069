"""Exceptions raised by the chat session engine."""


class ChatSessionError(Exception):
    """Base class for chat session errors."""


class SessionBusyError(ChatSessionError, RuntimeError):
    """Raised when a send is attempted while another one is in flight."""
