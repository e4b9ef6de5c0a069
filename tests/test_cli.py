"""
Tests for the terminal front end helpers.
"""

import io
import logging
from logging.handlers import RotatingFileHandler

from chat_session.cli import StreamPrinter, build_config, parse_args
from chat_session.messages import Message, Role
from chat_session.utils import setup_logging


class TestArguments:
    def test_flags_map_to_session_config(self):
        args = parse_args(
            [
                "--base_url",
                "http://host/v1",
                "--api_key",
                "k",
                "--model",
                "m",
                "--system_prompt",
                "s",
                "--chat_memory_turns",
                "3",
            ]
        )
        config = build_config(args)

        assert config.chat_completions_url == "http://host/v1/chat/completions"
        assert (config.api_key, config.model, config.system_prompt, config.chat_memory_turns) == ("k", "m", "s", 3)

    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("CHAT_BASE_URL", "http://env/v1")
        monkeypatch.setenv("CHAT_MEMORY_TURNS", "4")

        config = build_config(parse_args([]))

        assert config.base_url == "http://env/v1"
        assert config.chat_memory_turns == 4

    def test_request_timeout_defaults_to_none(self):
        assert build_config(parse_args([])).request_timeout is None
        assert build_config(parse_args(["--request_timeout", "2.5"])).request_timeout == 2.5


class TestStreamPrinter:
    """The printer echoes only the newly arrived part of the reply."""

    def test_prints_increments(self):
        out = io.StringIO()
        printer = StreamPrinter(out)
        user = Message.user("hi")

        printer((user, Message.placeholder()))
        printer((user, Message(role=Role.ASSISTANT, content="Hel")))
        printer((user, Message(role=Role.ASSISTANT, content="Hello")))

        assert out.getvalue() == "Hello"

    def test_new_turn_starts_fresh(self):
        out = io.StringIO()
        printer = StreamPrinter(out)
        printer((Message(role=Role.ASSISTANT, content="one"),))

        printer.start_turn()
        printer((Message(role=Role.ASSISTANT, content="two"),))

        assert out.getvalue() == "onetwo"


class TestLogging:
    def test_file_handler_attached_once(self, tmp_path):
        root = logging.getLogger()
        before = list(root.handlers)
        level = root.level
        try:
            setup_logging(str(tmp_path), logging.INFO)
            setup_logging(str(tmp_path), logging.INFO)

            file_handlers = [
                h for h in root.handlers if isinstance(h, RotatingFileHandler) and h not in before
            ]
            assert len(file_handlers) == 1
            assert (tmp_path / "chat_session.log").exists()
        finally:
            for handler in list(root.handlers):
                if handler not in before:
                    root.removeHandler(handler)
                    handler.close()
            root.setLevel(level)
