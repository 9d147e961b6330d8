# src/donow_sync/sync/operation_queue.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..core.errors import StorageError
from ..store.kv_store import SYNC_QUEUE_KEY, KeyValueStore
from ..store.models import (
    MAX_RETRIES,
    EntityType,
    OperationKind,
    OperationPayload,
    OperationStatus,
    SyncOperation,
    new_id,
    now_ms,
)

logger = logging.getLogger(__name__)

_UPDATABLE = frozenset({"status", "retry_count", "error", "operation", "data", "timestamp"})


class OperationQueue:
    """
    Persisted queue of SyncOperations awaiting transmission.

    At most one PENDING operation exists per entity: enqueueing for an entity
    that already has one overwrites it in place (same id, same position) with
    the new operation kind, payload and timestamp. Only the latest snapshot of
    a record needs to reach the server.

    Operations in other states (syncing, failed) are never overwritten; a new
    pending entry is appended behind them.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    @staticmethod
    def _load(raw: Any) -> list[SyncOperation]:
        if not raw:
            return []
        if not isinstance(raw, list):
            raise StorageError("sync queue is not a list")
        try:
            return [SyncOperation.from_dict(item) for item in raw if isinstance(item, dict)]
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"sync queue holds an invalid operation: {exc}") from exc

    @staticmethod
    def _dump(ops: list[SyncOperation]) -> list[dict[str, Any]]:
        return [op.to_dict() for op in ops]

    # ---- public API ----

    def enqueue(
        self,
        entity_type: EntityType,
        entity_id: str,
        operation: OperationKind,
        data: OperationPayload,
    ) -> SyncOperation:
        result: list[SyncOperation] = []

        def apply(raw: Any) -> list[dict[str, Any]]:
            ops = self._load(raw)
            ts = now_ms()
            for i, op in enumerate(ops):
                if op.entity_id == entity_id and op.status == OperationStatus.PENDING:
                    op.operation = operation
                    op.data = data
                    op.timestamp = ts
                    ops[i] = op
                    result.append(op)
                    return self._dump(ops)

            op = SyncOperation(
                id=new_id(),
                entity_type=entity_type,
                entity_id=entity_id,
                operation=operation,
                timestamp=ts,
                data=data,
            )
            ops.append(op)
            result.append(op)
            return self._dump(ops)

        self._kv.update(SYNC_QUEUE_KEY, apply, default=[])
        logger.debug("Queued %s %s %s", operation.value, entity_type.value, entity_id)
        return result[0]

    def get_all(self) -> list[SyncOperation]:
        return self._load(self._kv.get(SYNC_QUEUE_KEY, []))

    def get(self, op_id: str) -> SyncOperation | None:
        for op in self.get_all():
            if op.id == op_id:
                return op
        return None

    def eligible(self, max_retries: int = MAX_RETRIES) -> list[SyncOperation]:
        """Operations a sync run may attempt now, in queue order."""
        return [op for op in self.get_all() if op.is_eligible(max_retries)]

    def pending_count(self) -> int:
        return sum(1 for op in self.get_all() if op.status == OperationStatus.PENDING)

    def failed_count(self) -> int:
        return sum(1 for op in self.get_all() if op.status == OperationStatus.FAILED)

    def update(self, op_id: str, **fields: Any) -> SyncOperation | None:
        """
        Partial update of one operation.

        Returns the updated operation, or None when it is no longer queued
        (e.g. cleared concurrently).
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"unknown operation fields: {sorted(unknown)}")

        result: list[SyncOperation] = []

        def apply(raw: Any) -> list[dict[str, Any]]:
            ops = self._load(raw)
            for op in ops:
                if op.id != op_id:
                    continue
                for name, value in fields.items():
                    setattr(op, name, value)
                result.append(op)
                break
            return self._dump(ops)

        self._kv.update(SYNC_QUEUE_KEY, apply, default=[])
        return result[0] if result else None

    def claim(self, op_id: str, max_retries: int = MAX_RETRIES) -> SyncOperation | None:
        """
        Mark an operation SYNCING if it is still eligible.

        Returns the stored operation as claimed, which may carry newer data
        than the caller's copy (a pending entry is overwritten in place by
        enqueue). None when it left the queue or is no longer eligible.
        """
        result: list[SyncOperation] = []

        def apply(raw: Any) -> list[dict[str, Any]]:
            ops = self._load(raw)
            for op in ops:
                if op.id == op_id:
                    if op.is_eligible(max_retries):
                        op.status = OperationStatus.SYNCING
                        result.append(op)
                    break
            return self._dump(ops)

        self._kv.update(SYNC_QUEUE_KEY, apply, default=[])
        return result[0] if result else None

    def retire_exhausted(self, entity_id: str, max_retries: int = MAX_RETRIES) -> int:
        """Drop failed operations for an entity that will never be retried."""
        count: list[int] = []

        def apply(raw: Any) -> list[dict[str, Any]]:
            ops = self._load(raw)
            kept = [
                op
                for op in ops
                if not (
                    op.entity_id == entity_id
                    and op.status == OperationStatus.FAILED
                    and not op.is_eligible(max_retries)
                )
            ]
            count.append(len(ops) - len(kept))
            return self._dump(kept)

        self._kv.update(SYNC_QUEUE_KEY, apply, default=[])
        if count[0]:
            logger.info("Retired %d exhausted operations for %s", count[0], entity_id)
        return count[0]

    def remove(self, op_id: str) -> bool:
        removed: list[bool] = []

        def apply(raw: Any) -> list[dict[str, Any]]:
            ops = self._load(raw)
            kept = [op for op in ops if op.id != op_id]
            removed.append(len(kept) != len(ops))
            return self._dump(kept)

        self._kv.update(SYNC_QUEUE_KEY, apply, default=[])
        return removed[0]

    def remove_for_entity(
        self,
        entity_id: str,
        statuses: Iterable[OperationStatus] = (OperationStatus.PENDING,),
    ) -> int:
        wanted = set(statuses)
        count: list[int] = []

        def apply(raw: Any) -> list[dict[str, Any]]:
            ops = self._load(raw)
            kept = [op for op in ops if not (op.entity_id == entity_id and op.status in wanted)]
            count.append(len(ops) - len(kept))
            return self._dump(kept)

        self._kv.update(SYNC_QUEUE_KEY, apply, default=[])
        return count[0]

    def clear(self) -> None:
        self._kv.set(SYNC_QUEUE_KEY, [])
        logger.info("Sync queue cleared")
