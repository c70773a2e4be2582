# src/taskdesk/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)

PROMPT = ">>> You: "


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleMessenger:
    """OutboundMessenger that prints notifications locally (used when Matrix is off)."""

    async def send_text(
        self,
        *,
        text: str,
        room_id: str | None = None,
        to_user_id: str | None = None,
    ) -> None:
        target = to_user_id or room_id or "everyone"
        _print_ts(f"[NOTIFY -> {target}] {text}")


def _start_stdin_reader(
    loop: asyncio.AbstractEventLoop,
    lines: asyncio.Queue[str | None],
    ready: threading.Event,
) -> threading.Thread:
    """
    Read stdin in a daemon thread and hand lines to the event loop.

    input() blocks; a daemon thread never holds up interpreter shutdown.
    None on the queue means EOF.
    """

    def reader() -> None:
        while True:
            ready.wait()
            ready.clear()
            try:
                line = input(PROMPT)
            except (EOFError, KeyboardInterrupt):
                loop.call_soon_threadsafe(lines.put_nowait, None)
                return
            loop.call_soon_threadsafe(lines.put_nowait, line)

    t = threading.Thread(target=reader, name="console-stdin", daemon=True)
    t.start()
    return t


async def run_console_loop(state: AppState) -> None:
    user_id = str(getattr(state.settings, "console_user_id", "console"))
    logger.info("Console connector started (user_id=%s).", user_id)
    _print_ts("[CONSOLE] Type commands. Use /help for commands. Use /exit to quit.\n")

    lines: asyncio.Queue[str | None] = asyncio.Queue()
    ready = threading.Event()
    _start_stdin_reader(asyncio.get_running_loop(), lines, ready)

    while True:
        ready.set()
        raw = await lines.get()
        if raw is None:
            logger.info("Console EOF received, exiting.")
            break

        user_input = raw.strip()
        _rewrite_prev_line(f"[{_ts_local()}] {PROMPT}{user_input}")

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            resp = await command_registry.handle(state, user_input, user_id=user_id, display_name=user_id)
        except Exception:
            logger.exception("Command handler crashed.")
            resp = "Internal error while handling a command."

        if resp is None:
            resp = "Commands start with '/'. Use /help to list them."
        _print_ts(resp)

    logger.info("Console connector finished.")
