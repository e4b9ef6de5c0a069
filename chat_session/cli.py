"""Interactive terminal front end for the chat session engine."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import threading
from dataclasses import replace
from typing import List, Optional, TextIO

from dotenv import load_dotenv

from .cancellation import CancellationToken
from .catalog import check_connection, fetch_models
from .config import SessionConfig
from .history import History
from .messages import Role
from .payload import Attachment
from .service import ChatSession, SessionState
from .utils import setup_logging

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Commands: /reset clears the conversation, /models lists available models, /check tests the connection, "
    "/image <path> attaches an image to the next message, /quit exits. "
    "Press Ctrl+C while a reply streams to stop it."
)


class StreamPrinter:
    """Session listener that echoes the growing assistant reply."""

    def __init__(self, out: TextIO = sys.stdout) -> None:
        self.out = out
        self._printed = ""

    def start_turn(self) -> None:
        self._printed = ""

    def __call__(self, snapshot: History) -> None:
        if not snapshot:
            return
        last = snapshot[-1]
        if last.role is not Role.ASSISTANT or last.is_streaming:
            return
        content = last.content
        if content.startswith(self._printed):
            self.out.write(content[len(self._printed):])
        else:
            self.out.write("\n" + content)
        self.out.flush()
        self._printed = content


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with an OpenAI-compatible completion endpoint.")
    parser.add_argument(
        "--base_url",
        default=os.environ.get("CHAT_BASE_URL", "http://localhost:8000/v1"),
        help="Base URL of the API (the part before /chat/completions).",
    )
    parser.add_argument("--api_key", default=os.environ.get("CHAT_API_KEY", ""), help="Bearer credential, if any.")
    parser.add_argument("--model", default=os.environ.get("CHAT_MODEL", ""), help="Model identifier.")
    parser.add_argument(
        "--system_prompt",
        default=os.environ.get("CHAT_SYSTEM_PROMPT", ""),
        help="System prompt pinned at the start of the conversation.",
    )
    parser.add_argument(
        "--chat_memory_turns",
        type=int,
        default=int(os.environ.get("CHAT_MEMORY_TURNS", "10")),
        help="Complete turns kept in memory between sends.",
    )
    parser.add_argument(
        "--request_timeout",
        type=float,
        default=None,
        help="Seconds to wait for the server before giving up (default: wait until cancelled).",
    )
    parser.add_argument("--log_dir", help="Directory for application logs.")
    parser.add_argument("--log_level", default="WARNING", help="Console/file log level.")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> SessionConfig:
    return SessionConfig(
        base_url=args.base_url,
        api_key=args.api_key,
        model=args.model,
        system_prompt=args.system_prompt,
        chat_memory_turns=args.chat_memory_turns,
        request_timeout=args.request_timeout,
    )


def run_turn(
    session: ChatSession,
    printer: StreamPrinter,
    text: str,
    attachments: List[Attachment],
) -> SessionState:
    """Send ``text`` on a worker thread so Ctrl+C can cancel it."""
    token = CancellationToken()
    outcome: List[SessionState] = []

    def worker() -> None:
        outcome.append(session.send_message(text, attachments, token))

    printer.start_turn()
    thread = threading.Thread(target=worker, name="chat-session-send", daemon=True)
    thread.start()
    while thread.is_alive():
        try:
            thread.join(0.1)
        except KeyboardInterrupt:
            token.cancel()
    printer.out.write("\n")
    return outcome[0] if outcome else SessionState.FAILED


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    setup_logging(args.log_dir, getattr(logging, args.log_level.upper(), logging.WARNING))
    config = build_config(args)

    if not config.model:
        models = fetch_models(config)
        if models:
            config = replace(config, model=models[0])
            print(f"Using model {config.model}")

    logger.info("Starting chat session against %s (model=%s)", config.base_url, config.model or "<default>")
    session = ChatSession(config)
    printer = StreamPrinter()
    session.add_listener(printer)
    pending: List[Attachment] = []
    print(HELP_TEXT)

    while True:
        try:
            line = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not line:
            continue
        if line == "/quit":
            break
        if line == "/reset":
            session.reset()
            pending.clear()
            print("Conversation cleared.")
            continue
        if line == "/check":
            ok, message = check_connection(config)
            print(message if ok else f"Connection failed: {message}")
            continue
        if line == "/models":
            for name in fetch_models(config):
                print(f"  {name}")
            continue
        if line.startswith("/image "):
            path = line[len("/image "):].strip()
            try:
                pending.append(Attachment.from_path(path))
            except OSError as exc:
                print(f"Cannot attach {path}: {exc}")
                continue
            print(f"Attached {path} ({len(pending)} pending)")
            continue

        run_turn(session, printer, line, pending)
        pending = []
        if session.token_usage is not None:
            usage = session.token_usage
            print(
                f"[tokens] prompt={usage.prompt_tokens} completion={usage.completion_tokens} total={usage.total_tokens}"
            )

    session.client.close()


if __name__ == "__main__":
    main()
