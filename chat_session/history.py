"""Sliding-window compaction of the conversation history."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from .config import SessionConfig
from .messages import Message, Role

logger = logging.getLogger(__name__)

History = Tuple[Message, ...]
Turn = Tuple[Message, Message]


def _split_turns(messages: Sequence[Message]) -> Tuple[Optional[Message], List[Turn]]:
    """Return the leading system message and the positional (user, assistant) pairs."""
    system = messages[0] if messages and messages[0].role is Role.SYSTEM else None
    start = 1 if system is not None else 0

    turns: List[Turn] = []
    for i in range(start, len(messages), 2):
        current = messages[i]
        following = messages[i + 1] if i + 1 < len(messages) else None
        if current.role is Role.USER and following is not None and following.role is Role.ASSISTANT:
            turns.append((current, following))
        elif current.role is Role.USER:
            logger.warning("Dropping unpaired user message from history: %.40r", current.content)
    return system, turns


def compact_history(
    previous: Sequence[Message],
    text: str,
    attachments: Sequence[str],
    config: SessionConfig,
) -> History:
    """Build the history for a new turn.

    The result holds at most one leading system message, fewer than
    ``config.chat_memory_turns`` complete prior turns, the new user message
    and a trailing assistant placeholder.
    """
    messages = list(previous)
    if messages and messages[-1].role is Role.ASSISTANT and not messages[-1].content:
        messages.pop()

    system, turns = _split_turns(messages)
    while turns and len(turns) >= config.chat_memory_turns:
        turns.pop(0)

    compacted: List[Message] = [system] if system is not None else []
    for user_msg, assistant_msg in turns:
        compacted.extend((user_msg, assistant_msg))
    compacted.append(Message.user(text, tuple(attachments)))
    compacted.append(Message.placeholder())

    if config.system_prompt and compacted[0].role is not Role.SYSTEM:
        compacted.insert(0, Message.system(config.system_prompt))

    logger.debug(
        "Compacted history to %d message(s) (%d prior turn(s), window=%d)",
        len(compacted),
        len(turns),
        config.chat_memory_turns,
    )
    return tuple(compacted)


def reset_history(previous: Sequence[Message]) -> History:
    """Keep only the leading system message, if any."""
    if previous and previous[0].role is Role.SYSTEM:
        return (previous[0],)
    return ()


def count_complete_turns(messages: Sequence[Message]) -> int:
    """Count complete turns preceding a trailing (user, placeholder) pair."""
    body = list(messages)
    if len(body) >= 2 and body[-1].role is Role.ASSISTANT and body[-2].role is Role.USER:
        body = body[:-2]
    _, turns = _split_turns(body)
    return len(turns)
