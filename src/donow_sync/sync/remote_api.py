# src/donow_sync/sync/remote_api.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.errors import RemoteOperationError
from ..store.models import EntityType, EventPayload, TaskPayload

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return (response.text or "").strip()[:200]
    if isinstance(body, dict):
        for key in ("message", "detail", "error", "title"):
            if isinstance(body.get(key), str):
                return body[key]
    return str(body)[:200]


class RemoteApiClient:
    """
    Authenticated CRUD client for the DoNow REST API.

    The token is passed per call rather than baked into the client, so a
    re-login takes effect on the next sync run without rebuilding the client.
    Any transport failure or non-2xx status is raised as RemoteOperationError.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> RemoteApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {token}"}
        try:
            response = await client.request(method, path, json=json, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            detail = _error_detail(exc.response)
            logger.warning("%s %s -> %s %s", method, path, status, detail)
            raise RemoteOperationError(
                f"{method} {path} failed with HTTP {status}" + (f": {detail}" if detail else ""),
                status_code=status,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s transport error: %s", method, path, exc)
            raise RemoteOperationError(f"{method} {path} failed: {exc.__class__.__name__}: {exc}") from exc
        return response

    # ---- resources ----

    async def create(
        self,
        entity_type: EntityType,
        payload: TaskPayload | EventPayload,
        *,
        token: str,
    ) -> int:
        path = f"/{entity_type.resource}"
        response = await self._request("POST", path, token=token, json=payload.to_wire())
        try:
            body = response.json()
            return int(body["id"])
        except (ValueError, KeyError, TypeError) as exc:
            raise RemoteOperationError(f"POST {path} returned no resource id") from exc

    async def update(
        self,
        entity_type: EntityType,
        server_id: int,
        payload: TaskPayload | EventPayload,
        *,
        token: str,
    ) -> None:
        await self._request("PUT", f"/{entity_type.resource}/{server_id}", token=token, json=payload.to_wire())

    async def delete(self, entity_type: EntityType, server_id: int, *, token: str) -> None:
        await self._request("DELETE", f"/{entity_type.resource}/{server_id}", token=token)

    async def fetch_all(self, entity_type: EntityType, *, token: str) -> list[dict[str, Any]]:
        path = f"/{entity_type.resource}"
        response = await self._request("GET", path, token=token)
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteOperationError(f"GET {path} returned invalid JSON") from exc
        if not isinstance(body, list):
            raise RemoteOperationError(f"GET {path} did not return a list")
        return [item for item in body if isinstance(item, dict)]
