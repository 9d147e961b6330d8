# src/donow_sync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the sync core.

The engine depends on Protocols instead of concrete implementations.
This keeps the HTTP client and the reachability check swappable and makes
testing easier.
"""

from typing import Any, Awaitable, Callable, Protocol

from ..store.models import EntityType, EventPayload, TaskPayload

ConnectivityListener = Callable[[bool], Any]
# Called with the new reachability state; may return an awaitable.


class RemoteApi(Protocol):
    """Authenticated CRUD calls against the DoNow server."""

    def create(
            self,
            entity_type: EntityType,
            payload: TaskPayload | EventPayload,
            *,
            token: str,
    ) -> Awaitable[int]: ...

    def update(
            self,
            entity_type: EntityType,
            server_id: int,
            payload: TaskPayload | EventPayload,
            *,
            token: str,
    ) -> Awaitable[None]: ...

    def delete(self, entity_type: EntityType, server_id: int, *, token: str) -> Awaitable[None]: ...

    def fetch_all(self, entity_type: EntityType, *, token: str) -> Awaitable[list[dict[str, Any]]]: ...


class TokenProvider(Protocol):
    def get_token(self) -> str | None: ...


class ReachabilityProbe(Protocol):
    """Point-in-time network check. May raise; callers fail safe to offline."""

    def __call__(self) -> Awaitable[bool]: ...


class Connectivity(Protocol):
    def is_online(self) -> Awaitable[bool]: ...
    def subscribe(self, callback: ConnectivityListener) -> Callable[[], None]: ...
