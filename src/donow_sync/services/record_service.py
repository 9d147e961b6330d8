# src/donow_sync/services/record_service.py

from __future__ import annotations

"""
Offline-first CRUD facade.

Every operation works against the local store first and returns immediately;
each mutation also queues a sync operation and kicks off a background sync.
Local storage errors propagate to the caller. Sync errors never do.
"""

import asyncio
import logging
from typing import Any

from ..store.models import (
    MAX_RETRIES,
    DeletePayload,
    EntityType,
    LocalRecord,
    OperationKind,
    OperationStatus,
    SyncStatus,
    payload_for,
)
from ..store.record_store import RecordStore
from ..sync.operation_queue import OperationQueue
from ..sync.sync_engine import SyncEngine

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 100


class RecordService:
    def __init__(
        self,
        store: RecordStore,
        queue: OperationQueue,
        engine: SyncEngine | None = None,
    ) -> None:
        self.store = store
        self.queue = queue
        self.engine = engine
        self.last_sync_task: asyncio.Task | None = None

    @property
    def entity_type(self) -> EntityType:
        return self.store.entity_type

    def _kick_sync(self) -> None:
        if self.engine is None:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; background sync deferred to the scheduler")
            return
        self.last_sync_task = self.engine.trigger()

    def _queue_snapshot(self, record: LocalRecord) -> None:
        # A record the server has never seen must still go through create.
        kind = OperationKind.CREATE if record.server_id is None else OperationKind.UPDATE
        # The new snapshot supersedes failures that will never be retried.
        self.queue.retire_exhausted(record.id, self._max_retries)
        self.queue.enqueue(self.entity_type, record.id, kind, payload_for(record))

    # ---- reads ----

    def list(self) -> list[LocalRecord]:
        """Active records, newest first. Triggers a background sync."""
        records = self.store.get_active()
        logger.debug("Loaded %d %ss from local storage", len(records), self.entity_type.value)
        self._kick_sync()
        return records

    def get(self, record_id: str) -> LocalRecord | None:
        return self.store.get_by_id(record_id)

    # ---- mutations ----

    def create(self, fields: dict[str, Any]) -> LocalRecord:
        title = str(fields.get("title") or "").strip()
        if not title:
            raise ValueError("title is required")
        record = self.store.save({**fields, "title": title})
        self.queue.enqueue(self.entity_type, record.id, OperationKind.CREATE, payload_for(record))
        logger.info("%s created locally: %s", self.entity_type.value, record.id)
        self._kick_sync()
        return record

    def update(self, record_id: str, fields: dict[str, Any]) -> LocalRecord:
        record = self.store.update(record_id, {**fields, "sync_status": SyncStatus.PENDING})
        self._queue_snapshot(record)
        logger.info("%s updated locally: %s", self.entity_type.value, record_id)
        self._kick_sync()
        return record

    def complete(self, record_id: str) -> LocalRecord:
        record = self.store.complete(record_id)
        self._queue_snapshot(record)
        logger.info("%s completed locally: %s", self.entity_type.value, record_id)
        self._kick_sync()
        return record

    def delete(self, record_id: str) -> bool:
        record = self.store.soft_delete(record_id)

        if record.server_id is None:
            in_flight = [
                op
                for op in self.queue.get_all()
                if op.entity_id == record_id
                and (
                    op.status == OperationStatus.SYNCING
                    or (op.status == OperationStatus.FAILED and op.is_eligible(self._max_retries))
                )
            ]
            if not in_flight:
                # Never reached the server and nothing is about to: drop it locally only.
                dropped = self.queue.remove_for_entity(record_id, tuple(OperationStatus))
                logger.info("%s deleted locally before first sync: %s (dropped %d ops)", self.entity_type.value, record_id, dropped)
                return True

        self.queue.retire_exhausted(record_id, self._max_retries)
        self.queue.enqueue(
            self.entity_type,
            record_id,
            OperationKind.DELETE,
            DeletePayload(id=record_id, deleted_at=record.deleted_at or record.updated_at),
        )
        logger.info("%s deleted locally: %s", self.entity_type.value, record_id)
        self._kick_sync()
        return True

    def create_from_text(self, text: str) -> LocalRecord:
        """Quick capture: the first 100 characters become the title."""
        text = (text or "").strip()
        if not text:
            raise ValueError("text is required")
        fields: dict[str, Any] = {"title": text[:TITLE_MAX_CHARS], "completed": False}
        if len(text) > TITLE_MAX_CHARS:
            fields["description"] = text
        return self.create(fields)

    @property
    def _max_retries(self) -> int:
        return self.engine.max_retries if self.engine is not None else MAX_RETRIES
