"""
Tests for sliding-window history compaction.
"""

import pytest

from chat_session.config import SessionConfig
from chat_session.history import compact_history, count_complete_turns, reset_history
from chat_session.messages import STREAMING_SENTINEL, Message, Role


def _turns(count, start=0):
    messages = []
    for i in range(start, start + count):
        messages.append(Message.user(f"question {i}"))
        messages.append(Message(role=Role.ASSISTANT, content=f"answer {i}"))
    return messages


def _pairs(history):
    return [m.content for m in history if m.role is Role.USER]


class TestWindow:
    """Only the most recent complete turns survive a send."""

    def test_memory_of_two_keeps_one_prior_turn_and_the_new_one(self):
        history = _turns(3)
        result = compact_history(history, "next", (), SessionConfig(chat_memory_turns=2))

        assert _pairs(result) == ["question 2", "next"]
        assert count_complete_turns(result) == 1
        assert result[-1].content == STREAMING_SENTINEL

    @pytest.mark.parametrize("window", [1, 2, 3, 5])
    def test_prior_turns_stay_below_window(self, window):
        config = SessionConfig(chat_memory_turns=window)
        history = ()
        for i in range(8):
            history = compact_history(history, f"q{i}", (), config)
            history = history[:-1] + (history[-1].with_content(f"a{i}"),)
            assert count_complete_turns(history) < window

    def test_window_of_zero_keeps_no_prior_turns(self):
        result = compact_history(_turns(2), "next", (), SessionConfig(chat_memory_turns=0))
        assert _pairs(result) == ["next"]

    def test_order_of_surviving_turns_is_preserved(self):
        result = compact_history(_turns(4), "next", (), SessionConfig(chat_memory_turns=4))
        assert _pairs(result) == ["question 1", "question 2", "question 3", "next"]


class TestSystemMessage:
    """The system prompt is pinned at index 0 and never trimmed."""

    def test_system_prompt_prepended_on_first_send(self):
        result = compact_history((), "hello", (), SessionConfig(system_prompt="Be brief."))

        assert result[0].role is Role.SYSTEM
        assert result[0].content == "Be brief."
        assert [m.role for m in result] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]

    def test_existing_system_message_survives_trimming(self):
        history = [Message.system("Pinned")] + _turns(5)
        result = compact_history(history, "next", (), SessionConfig(chat_memory_turns=2, system_prompt="Other"))

        assert result[0].content == "Pinned"
        assert sum(1 for m in result if m.role is Role.SYSTEM) == 1
        assert _pairs(result) == ["question 4", "next"]

    def test_no_system_message_without_prompt(self):
        result = compact_history(_turns(1), "next", (), SessionConfig())
        assert result[0].role is Role.USER


class TestStaleEntries:
    """Leftovers from incomplete turns are discarded."""

    def test_empty_trailing_placeholder_dropped_with_its_user_message(self):
        history = _turns(1) + [Message.user("lost"), Message(role=Role.ASSISTANT, content="")]
        result = compact_history(history, "retry", (), SessionConfig())

        assert _pairs(result) == ["question 0", "retry"]

    def test_unpaired_user_message_excluded(self, caplog):
        history = _turns(1) + [Message.user("orphan")]
        result = compact_history(history, "next", (), SessionConfig())

        assert "orphan" not in [m.content for m in result]
        assert "unpaired" in caplog.text

    def test_attachments_kept_on_new_user_message(self):
        result = compact_history((), "look", ("data:image/png;base64,AAAA",), SessionConfig())
        assert result[-2].attachments == ("data:image/png;base64,AAAA",)

    def test_exactly_one_placeholder_at_the_end(self):
        result = compact_history(_turns(2), "next", (), SessionConfig())
        assert [m.is_streaming for m in result].count(True) == 1
        assert result[-1].is_streaming


class TestReset:
    def test_reset_keeps_system_message(self):
        history = [Message.system("Pinned")] + _turns(2)
        assert [m.content for m in reset_history(history)] == ["Pinned"]

    def test_reset_without_system_message_is_empty(self):
        assert reset_history(_turns(2)) == ()
