# src/donow_sync/sync/connectivity.py

from __future__ import annotations

"""
Connectivity monitor.

Reports whether the DoNow server is reachable and notifies listeners on every
online/offline flip. The state can come from two places:
- a polling loop around a ReachabilityProbe (start()/stop()),
- a platform callback pushing observed states via set_online().
"""

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable

import httpx

from ..core.ports import ConnectivityListener, ReachabilityProbe

logger = logging.getLogger(__name__)


class HttpReachabilityProbe:
    """
    Reachability check against the API host.

    Any HTTP response (even 401/404) means the network path works; only
    transport-level failures count as offline.
    """

    def __init__(self, url: str, *, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def __call__(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                await client.head(self._url)
            return True
        except httpx.HTTPError as exc:
            logger.debug("Reachability probe failed url=%s: %s", self._url, exc)
            return False


class ConnectivityMonitor:
    def __init__(self, probe: ReachabilityProbe) -> None:
        self._probe = probe
        self._listeners: list[ConnectivityListener] = []
        self._last_state: bool | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task] = set()

    @property
    def last_known_state(self) -> bool | None:
        return self._last_state

    async def is_online(self) -> bool:
        """Point-in-time check. Any probe error reports offline."""
        try:
            return bool(await self._probe())
        except Exception:
            logger.exception("Connectivity check failed; assuming offline")
            return False

    def subscribe(self, callback: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> bool:
        """
        Record an observed state. Listeners fire only on a transition.
        Returns True if the state flipped.
        """
        online = bool(online)
        previous = self._last_state
        self._last_state = online
        if previous is None or previous == online:
            # First observation establishes the baseline; no edge yet.
            return False

        logger.info("Network state changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            self._notify(listener, online)
        return True

    def _notify(self, listener: ConnectivityListener, online: bool) -> None:
        try:
            result = listener(online)
        except Exception:
            logger.exception("Connectivity listener failed")
            return

        if inspect.isawaitable(result):
            try:
                task = asyncio.ensure_future(result)
            except RuntimeError:
                # No running loop: nothing can drive the coroutine.
                logger.warning("Async connectivity listener dropped (no running event loop)")
                if inspect.iscoroutine(result):
                    result.close()
                return
            self._pending.add(task)
            task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)  # type: ignore[arg-type]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Connectivity listener failed", exc_info=exc)

    async def poll_once(self) -> bool:
        online = await self.is_online()
        self.set_online(online)
        return online

    async def _poll_loop(self, interval_seconds: float) -> None:
        sleep_s = max(0.05, float(interval_seconds))
        while True:
            await self.poll_once()
            await asyncio.sleep(sleep_s)

    def start(self, poll_interval_seconds: float = 10.0) -> None:
        """Start polling the probe (requires a running event loop)."""
        self.stop()
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop(poll_interval_seconds))
        logger.info("Connectivity polling started (interval: %ss)", poll_interval_seconds)

    def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
            logger.info("Connectivity polling stopped")
