# src/donow_sync/cli/console.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..core.state import AppState
from .commands import describe_error
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


async def run_console_loop(state: AppState) -> None:
    """
    Interactive REPL.

    input() runs in a worker thread so the event loop keeps driving background
    sync (timer, reconnect trigger, CRUD-triggered syncs) while we wait.
    Plain text without a leading slash is captured as a new task.
    """
    logger.info("Console started.")
    _print_ts("[CONSOLE] Type a task to capture it. Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        _print_ts(text)

    while True:
        try:
            user_input = (await asyncio.to_thread(input, ">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            user_input = f"/add {user_input}"

        try:
            reply = await command_registry.handle(state, user_input, emit=emit)
        except Exception as exc:
            if not isinstance(exc, (ValueError, LookupError)):
                logger.exception("Command handler crashed.")
            reply = describe_error(exc)

        if reply is not None:
            _print_ts(reply)

    logger.info("Console finished.")
