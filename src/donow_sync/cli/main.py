# src/donow_sync/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs inside one event loop:
- connectivity polling + auto-sync timer + reconnect trigger (background),
- console REPL (foreground).
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..core.state import AppState
from ..logging_setup import setup_logging
from .console import run_console_loop

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.scheduler.stop()
    except Exception:
        logger.exception("Failed to stop the sync scheduler.")

    state.connectivity.stop()

    # Give an in-flight sync a chance to finish its current operation.
    if state.engine.is_syncing:
        try:
            await asyncio.wait_for(state.engine.sync_all(), timeout=state.settings.http_timeout_seconds)
        except Exception:
            logger.debug("In-flight sync did not finish cleanly.", exc_info=True)

    try:
        await state.remote.aclose()
    except Exception:
        logger.debug("HTTP client close failed.", exc_info=True)


async def run(state: AppState) -> None:
    settings = state.settings

    state.connectivity.start(settings.connectivity_poll_seconds)
    if settings.auto_sync:
        state.scheduler.start(settings.sync_interval_ms)
    else:
        state.scheduler.start_network_listener()

    # Push anything left over from the previous session.
    state.engine.trigger()

    try:
        await run_console_loop(state)
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)

    try:
        asyncio.run(run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
