# src/donow_sync/sync/sync_scheduler.py

from __future__ import annotations

"""
Sync scheduler.

Triggers SyncEngine.sync_all() without user action:
- a periodic timer (start_auto_sync / stop_auto_sync),
- an immediate run whenever the connectivity monitor reports a transition
  to online (start_network_listener / stop_network_listener).

The scheduler owns its timer task and its subscription handle; there is no
module-level state, so several schedulers (e.g. in tests) never interfere.
"""

import asyncio
import logging
from collections.abc import Callable

from ..core.ports import Connectivity
from .sync_engine import SyncEngine

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 60_000


async def run_sync_timer(engine: SyncEngine, *, interval_seconds: float) -> None:
    """
    Simple periodic loop: sleep, then sync.

    Errors are logged and the loop keeps going.
    To stop the timer, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    while True:
        await asyncio.sleep(sleep_s)
        logger.debug("Auto sync triggered")
        try:
            await engine.sync_all()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Auto sync run failed")


class SyncScheduler:
    def __init__(self, engine: SyncEngine, connectivity: Connectivity) -> None:
        self._engine = engine
        self._connectivity = connectivity
        self._timer: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self.interval_ms: int | None = None

    @property
    def auto_sync_active(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def listening(self) -> bool:
        return self._unsubscribe is not None

    # ---- periodic timer ----

    def start_auto_sync(self, interval_ms: int = DEFAULT_INTERVAL_MS) -> None:
        """Start (or restart) the periodic timer. Requires a running event loop."""
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.stop_auto_sync()
        self._timer = asyncio.get_running_loop().create_task(
            run_sync_timer(self._engine, interval_seconds=interval_ms / 1000)
        )
        self.interval_ms = interval_ms
        logger.info("Auto sync started (interval: %dms)", interval_ms)

    def stop_auto_sync(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        self.interval_ms = None
        logger.info("Auto sync stopped")

    # ---- reconnect trigger ----

    def _on_connectivity_change(self, online: bool) -> None:
        if not online:
            return
        logger.info("Network restored, syncing...")
        self._engine.trigger()

    def start_network_listener(self) -> None:
        self.stop_network_listener()
        self._unsubscribe = self._connectivity.subscribe(self._on_connectivity_change)
        logger.info("Network listener set up")

    def stop_network_listener(self) -> None:
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        logger.info("Network listener cleaned up")

    # ---- lifecycle ----

    def start(self, interval_ms: int = DEFAULT_INTERVAL_MS) -> None:
        self.start_network_listener()
        self.start_auto_sync(interval_ms)

    async def stop(self) -> None:
        timer = self._timer
        self.stop_auto_sync()
        self.stop_network_listener()
        if timer is not None:
            try:
                await timer
            except asyncio.CancelledError:
                pass
