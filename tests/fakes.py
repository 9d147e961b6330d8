# tests/fakes.py

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from donow_sync.core.errors import RemoteOperationError
from donow_sync.core.ports import ConnectivityListener
from donow_sync.store.models import EntityType, EventPayload, TaskPayload


@dataclass(slots=True)
class RemoteCall:
    method: str
    entity_type: EntityType
    server_id: int | None
    payload: TaskPayload | EventPayload | None
    token: str


class FakeRemoteApi:
    """
    In-memory RemoteApi used by engine tests.

    - Captures every call for assertions
    - Hands out increasing server ids (or the next ones queued in next_ids)
    - fail_with[method] makes that method raise RemoteOperationError(status)
    - gate, when set, blocks every call until released (for overlap tests)
    """

    def __init__(self, next_ids: list[int] | None = None) -> None:
        self.calls: list[RemoteCall] = []
        self.next_ids = list(next_ids or [])
        self._auto_id = 1000
        self.fail_with: dict[str, int | None] = {}
        self.gate: asyncio.Event | None = None
        self.server: list[dict[str, Any]] = []

    async def _maybe_fail(self, method: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if method in self.fail_with:
            status = self.fail_with[method]
            if status is None:
                raise RemoteOperationError(f"{method} failed: ConnectError")
            raise RemoteOperationError(f"{method} failed with HTTP {status}", status_code=status)

    def calls_for(self, method: str) -> list[RemoteCall]:
        return [c for c in self.calls if c.method == method]

    async def create(self, entity_type: EntityType, payload, *, token: str) -> int:
        self.calls.append(RemoteCall("create", entity_type, None, payload, token))
        await self._maybe_fail("create")
        if self.next_ids:
            return self.next_ids.pop(0)
        self._auto_id += 1
        return self._auto_id

    async def update(self, entity_type: EntityType, server_id: int, payload, *, token: str) -> None:
        self.calls.append(RemoteCall("update", entity_type, server_id, payload, token))
        await self._maybe_fail("update")

    async def delete(self, entity_type: EntityType, server_id: int, *, token: str) -> None:
        self.calls.append(RemoteCall("delete", entity_type, server_id, None, token))
        await self._maybe_fail("delete")

    async def fetch_all(self, entity_type: EntityType, *, token: str) -> list[dict[str, Any]]:
        self.calls.append(RemoteCall("fetch_all", entity_type, None, None, token))
        await self._maybe_fail("fetch_all")
        return list(self.server)

    async def aclose(self) -> None:
        return None


@dataclass(slots=True)
class FakeConnectivity:
    """Connectivity port with a settable state and synchronous notifications."""

    online: bool = True
    checks: int = 0
    listeners: list[ConnectivityListener] = field(default_factory=list)

    async def is_online(self) -> bool:
        self.checks += 1
        return self.online

    def subscribe(self, callback: ConnectivityListener) -> Callable[[], None]:
        self.listeners.append(callback)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self.listeners.remove(callback)

        return unsubscribe

    def flip(self, online: bool) -> None:
        self.online = online
        for listener in list(self.listeners):
            listener(online)

    def stop(self) -> None:
        return None


@dataclass(slots=True)
class FakeTokens:
    token: str | None = "test-token"

    def get_token(self) -> str | None:
        return self.token
