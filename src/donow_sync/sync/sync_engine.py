# src/donow_sync/sync/sync_engine.py

from __future__ import annotations

"""
Sync engine.

Drains the operation queue against the remote API:
- only when online and authenticated,
- one operation at a time, in queue order,
- success removes the operation, failure records it and moves on,
- at most one drain runs at a time (concurrent callers share its result).
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from ..core.errors import AuthMissingError, PreconditionError, RemoteOperationError
from ..core.ports import Connectivity, RemoteApi, TokenProvider
from ..store.models import (
    MAX_RETRIES,
    EntityType,
    EventPayload,
    OperationKind,
    OperationStatus,
    SyncOperation,
    SyncResult,
    SyncStatus,
    SyncStatusReport,
    TaskPayload,
    now_ms,
)
from ..store.record_store import RecordStore
from .operation_queue import OperationQueue

logger = logging.getLogger(__name__)


class RemoteRecordGoneError(RemoteOperationError):
    """PUT hit a 404: the server copy no longer exists. Not worth retrying."""


def format_sync_time(ts_ms: int) -> str:
    if ts_ms <= 0:
        return "never"
    return datetime.fromtimestamp(ts_ms / 1000).astimezone().strftime("%Y-%m-%d %H:%M:%S")


class SyncEngine:
    def __init__(
        self,
        *,
        stores: Iterable[RecordStore],
        queue: OperationQueue,
        remote: RemoteApi,
        connectivity: Connectivity,
        tokens: TokenProvider,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        self._stores: dict[EntityType, RecordStore] = {s.entity_type: s for s in stores}
        if not self._stores:
            raise ValueError("at least one RecordStore is required")
        self._meta_store = next(iter(self._stores.values()))
        self._queue = queue
        self._remote = remote
        self._connectivity = connectivity
        self._tokens = tokens
        self.max_retries = max(1, int(max_retries))

        self._inflight: asyncio.Task[SyncResult] | None = None
        self._background: set[asyncio.Task[SyncResult]] = set()

    @property
    def is_syncing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # ---- entry points ----

    async def sync_all(self) -> SyncResult:
        """
        Push every eligible queued operation to the server.

        Single-flight: while a drain is running, further calls wait for it and
        return its result instead of starting a second pass over the queue.
        """
        task = self._inflight
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(self._drain())
            self._inflight = task
        else:
            logger.debug("Sync already in progress; joining it")
        return await asyncio.shield(task)

    def trigger(self) -> asyncio.Task[SyncResult]:
        """
        Fire-and-forget background sync.

        The returned task may be awaited or ignored; it never raises; failures
        are logged and the result is zero counts.
        """
        task = asyncio.get_running_loop().create_task(self._background_sync())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _background_sync(self) -> SyncResult:
        try:
            return await self.sync_all()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Background sync failed")
            return SyncResult()

    # ---- drain loop ----

    async def _drain(self) -> SyncResult:
        if not await self._connectivity.is_online():
            logger.info("Offline, skipping sync")
            return SyncResult()

        eligible = self._queue.eligible(self.max_retries)
        if not eligible:
            logger.debug("No pending operations to sync")
            return SyncResult()

        try:
            token = self._require_token()
        except AuthMissingError as exc:
            logger.warning("Sync aborted: %s", exc)
            return SyncResult()

        logger.info("Syncing %d operations...", len(eligible))

        success = 0
        failed = 0
        for candidate in eligible:
            # Earlier pushes await the network; the entry may have been
            # rewritten or dropped since the eligible list was read.
            op = self._queue.claim(candidate.id, self.max_retries)
            if op is None:
                logger.debug("Operation %s no longer eligible; skipping", candidate.id)
                continue

            try:
                await self._dispatch(op, token)
            except RemoteOperationError as exc:
                failed += 1
                self._record_failure(op, exc)
            except Exception as exc:
                failed += 1
                logger.exception("Unexpected error syncing %s %s %s", op.operation.value, op.entity_type.value, op.entity_id)
                self._record_failure(op, exc)
            else:
                success += 1
                self._queue.remove(op.id)

        if success > 0:
            self._meta_store.set_last_sync_time(now_ms())

        logger.info("Sync complete: %d success, %d failed", success, failed)
        return SyncResult(success=success, failed=failed, total=success + failed)

    def _require_token(self) -> str:
        token = self._tokens.get_token()
        if not token:
            raise AuthMissingError("no auth token found; log in to sync")
        return token

    def _record_failure(self, op: SyncOperation, exc: Exception) -> None:
        retry_count = op.retry_count + 1
        if isinstance(exc, RemoteRecordGoneError):
            retry_count = max(retry_count, self.max_retries)
        logger.warning(
            "Sync failed for %s %s %s (attempt %d): %s",
            op.operation.value,
            op.entity_type.value,
            op.entity_id,
            op.retry_count + 1,
            exc,
        )
        self._queue.update(
            op.id,
            status=OperationStatus.FAILED,
            retry_count=retry_count,
            error=str(exc) or exc.__class__.__name__,
        )

    # ---- per-operation dispatch ----

    async def _dispatch(self, op: SyncOperation, token: str) -> None:
        store = self._stores.get(op.entity_type)
        if store is None:
            raise PreconditionError(f"no local store wired for {op.entity_type.value} records")

        if op.operation == OperationKind.CREATE:
            await self._push_create(store, op, token)
        elif op.operation == OperationKind.UPDATE:
            await self._push_update(store, op, token)
        elif op.operation == OperationKind.DELETE:
            await self._push_delete(store, op, token)
        else:  # pragma: no cover - enum is exhaustive
            raise PreconditionError(f"unknown operation {op.operation!r}")

    @staticmethod
    def _business_payload(op: SyncOperation) -> TaskPayload | EventPayload:
        if not isinstance(op.data, (TaskPayload, EventPayload)):
            raise PreconditionError(f"{op.operation.value} operation {op.id} carries no record snapshot")
        return op.data

    def _mark_synced(self, store: RecordStore, op: SyncOperation, **extra: Any) -> None:
        """
        Record a successful push on the local record.

        If the record was edited again while this operation was in flight, a
        newer operation is queued for it and the record stays pending.
        Exhausted failures are never retried and do not count.
        """
        newer = any(
            other.entity_id == op.entity_id
            and other.id != op.id
            and (other.status == OperationStatus.SYNCING or other.is_eligible(self.max_retries))
            for other in self._queue.get_all()
        )
        fields: dict[str, Any] = dict(extra)
        if not newer:
            fields["sync_status"] = SyncStatus.SYNCED
            fields["last_synced_at"] = now_ms()
        if fields:
            store.update(op.entity_id, fields)

    async def _push_create(self, store: RecordStore, op: SyncOperation, token: str) -> None:
        payload = self._business_payload(op)
        record = store.get_by_id(op.entity_id)

        if record is not None and record.server_id is not None:
            # An earlier create already reached the server; never create twice.
            await self._put(store, op, record.server_id, payload, token)
            logger.info("%s already on server, updated instead: %s (%s)", op.entity_type.value, op.entity_id, record.server_id)
            return

        server_id = await self._remote.create(op.entity_type, payload, token=token)
        if record is None:
            logger.warning("%s %s vanished locally after remote create -> %s", op.entity_type.value, op.entity_id, server_id)
            return
        self._mark_synced(store, op, server_id=server_id)
        logger.info("%s created on server: %s -> %s", op.entity_type.value, op.entity_id, server_id)

    async def _push_update(self, store: RecordStore, op: SyncOperation, token: str) -> None:
        payload = self._business_payload(op)
        record = store.get_by_id(op.entity_id)
        if record is None or record.server_id is None:
            raise PreconditionError(f"no serverId for update of {op.entity_type.value} {op.entity_id}")

        await self._put(store, op, record.server_id, payload, token)
        logger.info("%s updated on server: %s (%s)", op.entity_type.value, op.entity_id, record.server_id)

    async def _put(
        self,
        store: RecordStore,
        op: SyncOperation,
        server_id: int,
        payload: TaskPayload | EventPayload,
        token: str,
    ) -> None:
        try:
            await self._remote.update(op.entity_type, server_id, payload, token=token)
        except RemoteOperationError as exc:
            if not exc.is_not_found:
                raise
            store.update(op.entity_id, {"sync_status": SyncStatus.CONFLICT})
            raise RemoteRecordGoneError(
                f"{op.entity_type.value} {server_id} no longer exists on server",
                status_code=404,
            ) from exc
        self._mark_synced(store, op)

    async def _push_delete(self, store: RecordStore, op: SyncOperation, token: str) -> None:
        record = store.get_by_id(op.entity_id)
        server_id = record.server_id if record is not None else None
        if server_id is None:
            raise PreconditionError(f"no serverId for delete of {op.entity_type.value} {op.entity_id}")

        try:
            await self._remote.delete(op.entity_type, server_id, token=token)
        except RemoteOperationError as exc:
            if not exc.is_not_found:
                raise
            logger.info("%s %s already gone on server; delete treated as done", op.entity_type.value, server_id)
            return
        logger.info("%s deleted on server: %s (%s)", op.entity_type.value, op.entity_id, server_id)

    # ---- status / pull ----

    async def status(self) -> SyncStatusReport:
        online = await self._connectivity.is_online()
        last_sync = self._meta_store.get_last_sync_time()
        return SyncStatusReport(
            is_online=online,
            pending_operations=self._queue.pending_count(),
            failed_operations=self._queue.failed_count(),
            last_sync_time=last_sync,
            last_sync_time_formatted=format_sync_time(last_sync),
        )

    async def pull(self, entity_type: EntityType = EntityType.TASK) -> list[dict[str, Any]]:
        """
        Fetch the server's copy of a collection.

        Nothing is merged into the local store; the result is for inspection.
        Offline, unauthenticated and remote failures all yield an empty list.
        """
        if not await self._connectivity.is_online():
            logger.info("Offline, skipping pull")
            return []
        token = self._tokens.get_token()
        if not token:
            logger.warning("Pull skipped: no auth token found")
            return []
        try:
            items = await self._remote.fetch_all(entity_type, token=token)
        except RemoteOperationError as exc:
            logger.error("Pulling %s from server failed: %s", entity_type.resource, exc)
            return []
        logger.info("Pulled %d %s from server", len(items), entity_type.resource)
        return items
