# src/donow_sync/store/record_store.py

from __future__ import annotations

import logging
from typing import Any

from ..core.errors import RecordNotFoundError, StorageError
from .kv_store import EVENTS_KEY, LAST_SYNC_KEY, TASKS_KEY, KeyValueStore
from .models import (
    MUTABLE_RECORD_FIELDS,
    EntityType,
    LocalRecord,
    StorageStats,
    SyncStatus,
    new_id,
    now_ms,
)

logger = logging.getLogger(__name__)

_COLLECTION_KEYS = {
    EntityType.TASK: TASKS_KEY,
    EntityType.EVENT: EVENTS_KEY,
}


class RecordStore:
    """
    Local store for one entity collection (tasks or events).

    The whole collection is one JSON document in the key-value backend.
    Every mutation is a single atomic read-modify-write on that key.
    Soft-deleted records stay in the collection until clear().
    """

    def __init__(self, kv: KeyValueStore, entity_type: EntityType = EntityType.TASK) -> None:
        self._kv = kv
        self.entity_type = entity_type
        self._key = _COLLECTION_KEYS[entity_type]

    # ---- helpers ----

    def _load(self, raw: Any) -> list[LocalRecord]:
        if not raw:
            return []
        if not isinstance(raw, list):
            raise StorageError(f"collection {self._key!r} is not a list")
        try:
            return [LocalRecord.from_dict(item) for item in raw if isinstance(item, dict)]
        except (TypeError, ValueError) as exc:
            raise StorageError(f"collection {self._key!r} holds an invalid record: {exc}") from exc

    @staticmethod
    def _check_fields(fields: dict[str, Any]) -> None:
        unknown = set(fields) - MUTABLE_RECORD_FIELDS
        if unknown:
            raise ValueError(f"unknown record fields: {sorted(unknown)}")

    def _mutate(self, record_id: str, changes: dict[str, Any]) -> LocalRecord:
        result: list[LocalRecord] = []

        def apply(raw: Any) -> list[dict[str, Any]]:
            records = self._load(raw)
            for i, rec in enumerate(records):
                if rec.id != record_id:
                    continue
                merged = rec.to_dict()
                merged.update(changes)
                merged["id"] = rec.id
                merged["created_at"] = rec.created_at
                merged["entity_type"] = rec.entity_type.value
                merged["updated_at"] = now_ms()
                records[i] = LocalRecord.from_dict(merged)
                result.append(records[i])
                return [r.to_dict() for r in records]
            raise RecordNotFoundError(record_id, self.entity_type.value)

        self._kv.update(self._key, apply, default=[])
        return result[0]

    # ---- public API ----

    def get_all(self) -> list[LocalRecord]:
        """Every record, soft-deleted ones included."""
        return self._load(self._kv.get(self._key, []))

    def get_active(self) -> list[LocalRecord]:
        records = [r for r in self.get_all() if not r.deleted]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def get_by_id(self, record_id: str) -> LocalRecord | None:
        for rec in self.get_all():
            if rec.id == record_id:
                return rec
        return None

    def save(self, fields: dict[str, Any] | None = None, *, record_id: str | None = None) -> LocalRecord:
        fields = dict(fields or {})
        self._check_fields(fields)

        now = now_ms()
        data = {
            **fields,
            "id": record_id or new_id(),
            "entity_type": self.entity_type.value,
            "created_at": now,
            "updated_at": now,
            "sync_status": SyncStatus.PENDING.value,
            "deleted": False,
            "deleted_at": None,
        }
        record = LocalRecord.from_dict(data)

        def apply(raw: Any) -> list[dict[str, Any]]:
            records = self._load(raw)
            if any(r.id == record.id for r in records):
                raise StorageError(f"{self.entity_type.value} already exists: {record.id}")
            records.append(record)
            return [r.to_dict() for r in records]

        self._kv.update(self._key, apply, default=[])
        logger.debug("%s saved locally id=%s", self.entity_type.value, record.id)
        return record

    def update(self, record_id: str, fields: dict[str, Any]) -> LocalRecord:
        self._check_fields(fields)
        record = self._mutate(record_id, dict(fields))
        logger.debug("%s updated locally id=%s", self.entity_type.value, record_id)
        return record

    def soft_delete(self, record_id: str) -> LocalRecord:
        now = now_ms()
        record = self._mutate(
            record_id,
            {"deleted": True, "deleted_at": now, "sync_status": SyncStatus.PENDING.value},
        )
        logger.debug("%s soft-deleted locally id=%s", self.entity_type.value, record_id)
        return record

    def complete(self, record_id: str) -> LocalRecord:
        return self._mutate(
            record_id,
            {"completed": True, "completed_at": now_ms(), "sync_status": SyncStatus.PENDING.value},
        )

    def stats(self) -> StorageStats:
        records = self.get_all()
        deleted = sum(1 for r in records if r.deleted)
        pending = sum(1 for r in records if r.sync_status != SyncStatus.SYNCED)
        return StorageStats(
            total=len(records),
            active=len(records) - deleted,
            deleted=deleted,
            pending_sync=pending,
        )

    def clear(self) -> None:
        self._kv.delete(self._key)
        logger.info("Local %s collection cleared", self.entity_type.value)

    # ---- last sync marker (shared by all collections) ----

    def get_last_sync_time(self) -> int:
        raw = self._kv.get(LAST_SYNC_KEY, 0)
        try:
            return int(raw or 0)
        except (TypeError, ValueError):
            return 0

    def set_last_sync_time(self, ts: int) -> None:
        self._kv.set(LAST_SYNC_KEY, int(ts))
