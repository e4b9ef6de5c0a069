"""Chat session engine: history, request dispatch and streamed reply assembly."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

import requests

from .cancellation import CancellationToken
from .config import SessionConfig
from .exceptions import SessionBusyError
from .history import History, compact_history, reset_history
from .llm_client import ChatLLMClient
from .messages import ERROR_NOTICE_PREFIX, STOP_NOTICE, Message, TokenUsage
from .payload import AttachmentLike, build_payload, encode_attachment
from .stream_decoder import StreamDecoder, extract_fragment, extract_message, extract_usage

logger = logging.getLogger(__name__)

Listener = Callable[[History], None]


class SessionState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ChatSession:
    """Single-conversation engine consumed by a rendering front end.

    The history is an immutable tuple that is replaced wholesale on every
    update, so :attr:`history` and listeners always observe a complete
    snapshot. Only one :meth:`send_message` may run at a time; callers
    serialize on :attr:`is_streaming`.
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        *,
        client: Optional[ChatLLMClient] = None,
    ) -> None:
        self.config = config or SessionConfig()
        self.client = client or ChatLLMClient()
        self._lock = threading.Lock()
        self._history: History = ()
        self._state = SessionState.IDLE
        self._active_index: Optional[int] = None
        self._token_usage: Optional[TokenUsage] = None
        self._listeners: List[Listener] = []

    @property
    def history(self) -> History:
        return self._history

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state is not SessionState.IDLE

    @property
    def active_index(self) -> Optional[int]:
        return self._active_index

    @property
    def token_usage(self) -> Optional[TokenUsage]:
        return self._token_usage

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def export_history(self) -> List[Dict[str, object]]:
        return [message.to_dict() for message in self._history]

    def reset(self) -> None:
        """Forget every turn, keeping only the leading system message."""
        with self._lock:
            if self._state is not SessionState.IDLE:
                raise SessionBusyError("Cannot reset while a reply is in progress")
            self._history = reset_history(self._history)
            self._token_usage = None
            snapshot = self._history
        logger.info("Session history reset (%d message(s) kept)", len(snapshot))
        self._notify(snapshot)

    def send_message(
        self,
        text: str,
        attachments: Iterable[AttachmentLike] = (),
        cancel_token: Optional[CancellationToken] = None,
        *,
        config: Optional[SessionConfig] = None,
    ) -> SessionState:
        """Send one user turn and assemble the assistant reply into history.

        Transport and parse failures are written into the reply as a notice;
        the terminal state of the turn is returned.
        """
        config = config or self.config
        cancel_token = cancel_token or CancellationToken()
        encoded = tuple(encode_attachment(blob) for blob in attachments)

        with self._lock:
            if self._state is not SessionState.IDLE:
                raise SessionBusyError("A reply is already in progress")
            self._state = SessionState.SENDING
            history = compact_history(self._history, text, encoded, config)
            self._history = history
            self._active_index = len(history) - 1
            self._token_usage = None
        self._notify(history)

        outcome = SessionState.FAILED
        try:
            outcome = self._run_turn(config, history, cancel_token)
        except Exception as exc:
            if cancel_token.cancelled:
                logger.info("Reply cancelled while %s: %s", self._state.value, exc)
                outcome = self._finish_cancelled()
            else:
                logger.exception("Chat completion failed")
                self._finalize(f"{ERROR_NOTICE_PREFIX} {exc}", SessionState.FAILED)
                outcome = SessionState.FAILED
        finally:
            with self._lock:
                self._active_index = None
                self._state = SessionState.IDLE
        logger.info("Turn finished: %s", outcome.value)
        return outcome

    def _run_turn(
        self,
        config: SessionConfig,
        history: History,
        cancel_token: CancellationToken,
    ) -> SessionState:
        if cancel_token.cancelled:
            return self._finish_cancelled()

        with self.client.abort_on_cancel(cancel_token):
            response = self.client.open_completion(config, build_payload(config, history))
            try:
                if cancel_token.cancelled:
                    return self._finish_cancelled()
                if not self.client.has_incremental_body(response):
                    return self._consume_json(response, cancel_token)
                return self._consume_stream(response, cancel_token)
            finally:
                response.close()

    def _consume_json(self, response: requests.Response, cancel_token: CancellationToken) -> SessionState:
        data = self.client.read_json(response)
        if cancel_token.cancelled:
            return self._finish_cancelled()
        message = extract_message(data)
        if message:
            self._apply_fragment(message)
        self._complete(extract_usage(data))
        return SessionState.COMPLETED

    def _consume_stream(self, response: requests.Response, cancel_token: CancellationToken) -> SessionState:
        self._set_state(SessionState.STREAMING)
        decoder = StreamDecoder()
        usage: Optional[TokenUsage] = None
        chunks = self.client.iter_chunks(response)

        while True:
            if cancel_token.cancelled:
                return self._finish_cancelled()
            chunk = next(chunks, None)
            if chunk is None:
                break
            for record in decoder.feed(chunk):
                if cancel_token.cancelled:
                    return self._finish_cancelled()
                record_usage = extract_usage(record)
                if record_usage is not None:
                    usage = record_usage
                fragment = extract_fragment(record)
                if fragment:
                    self._apply_fragment(fragment)

        if cancel_token.cancelled:
            return self._finish_cancelled()

        leftover = decoder.finish()
        if leftover is not None:
            message = extract_message(leftover)
            if message:
                self._apply_fragment(message)
            leftover_usage = extract_usage(leftover)
            if leftover_usage is not None:
                usage = leftover_usage

        self._complete(usage)
        return SessionState.COMPLETED

    def _apply_fragment(self, fragment: str) -> None:
        def apply(message: Message) -> Message:
            if message.is_streaming:
                return message.with_content(fragment)
            return message.with_content(message.content + fragment)

        self._update_active(apply)

    def _complete(self, usage: Optional[TokenUsage]) -> None:
        with self._lock:
            index = self._active_index
            if index is None or index >= len(self._history):
                return
            updated = []
            for position, message in enumerate(self._history):
                if position == index:
                    if message.is_streaming:
                        message = message.with_content("")
                    if usage is not None:
                        message = message.with_usage(usage)
                elif message.usage is not None:
                    message = message.with_usage(None)
                updated.append(message)
            self._history = tuple(updated)
            self._state = SessionState.COMPLETED
            if usage is not None:
                self._token_usage = usage
            snapshot = self._history
        self._notify(snapshot)

    def _finish_cancelled(self) -> SessionState:
        self._finalize(STOP_NOTICE, SessionState.CANCELLED)
        return SessionState.CANCELLED

    def _finalize(self, notice: str, state: SessionState) -> None:
        """Write ``notice`` into the reply and enter ``state`` in one step."""

        def append_notice(message: Message) -> Message:
            base = "" if message.is_streaming else message.content
            return message.with_content(f"{base}\n{notice}" if base else notice)

        self._update_active(append_notice, state)

    def _set_state(self, state: SessionState) -> None:
        with self._lock:
            self._state = state

    def _update_active(
        self,
        update: Callable[[Message], Message],
        state: Optional[SessionState] = None,
    ) -> None:
        with self._lock:
            if state is not None:
                self._state = state
            index = self._active_index
            if index is None or index >= len(self._history):
                return
            entries = list(self._history)
            entries[index] = update(entries[index])
            self._history = tuple(entries)
            snapshot = self._history
        self._notify(snapshot)

    def _notify(self, snapshot: History) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("History listener %r failed", listener)
