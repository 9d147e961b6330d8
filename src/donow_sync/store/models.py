# src/donow_sync/store/models.py

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, fields
from enum import StrEnum
from typing import Any

MAX_RETRIES = 3


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


class EntityType(StrEnum):
    TASK = "task"
    EVENT = "event"

    @property
    def resource(self) -> str:
        """REST collection name on the server (/tasks, /events)."""
        return f"{self.value}s"


class SyncStatus(StrEnum):
    SYNCED = "synced"
    PENDING = "pending"
    CONFLICT = "conflict"

    @classmethod
    def from_raw(cls, raw: str | None) -> SyncStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class OperationKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class OperationStatus(StrEnum):
    PENDING = "pending"
    SYNCING = "syncing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(slots=True)
class LocalRecord:
    id: str
    entity_type: EntityType
    created_at: int
    updated_at: int
    sync_status: SyncStatus = SyncStatus.PENDING

    title: str = ""
    description: str | None = None
    due_date: str | None = None
    priority: str | None = None
    category_id: int | None = None
    category: str | None = None
    completed: bool = False
    completed_at: int | None = None

    reminder_enabled: bool = False
    reminder_minutes: int = 15
    notification_id: str | None = None

    deleted: bool = False
    deleted_at: int | None = None

    server_id: int | None = None
    last_synced_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["entity_type"] = self.entity_type.value
        d["sync_status"] = self.sync_status.value
        return d

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> LocalRecord:
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in raw.items() if k in known}
        data["entity_type"] = EntityType(data.get("entity_type") or EntityType.TASK)
        data["sync_status"] = SyncStatus.from_raw(data.get("sync_status"))
        return cls(**data)


# Fields the record store lets callers write through save()/update().
MUTABLE_RECORD_FIELDS = frozenset(
    {
        "title",
        "description",
        "due_date",
        "priority",
        "category_id",
        "category",
        "completed",
        "completed_at",
        "reminder_enabled",
        "reminder_minutes",
        "notification_id",
        "deleted",
        "deleted_at",
        "server_id",
        "sync_status",
        "last_synced_at",
    }
)


# ---- typed operation payloads ----


@dataclass(slots=True, frozen=True)
class TaskPayload:
    """Body of POST/PUT /tasks."""

    title: str
    description: str | None = None
    due_date: str | None = None
    priority: str | None = None
    completed: bool = False
    category_id: int | None = None

    @classmethod
    def from_record(cls, record: LocalRecord) -> TaskPayload:
        return cls(
            title=record.title,
            description=record.description,
            due_date=record.due_date,
            priority=record.priority,
            completed=record.completed,
            category_id=record.category_id,
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "dueDate": self.due_date,
            "priority": self.priority,
            "completed": self.completed,
            "categoryId": self.category_id,
        }


@dataclass(slots=True, frozen=True)
class EventPayload:
    """Body of POST/PUT /events."""

    title: str
    description: str | None = None
    category: str = "NORMAL"
    event_time: str | None = None
    severity: str | None = None

    @classmethod
    def from_record(cls, record: LocalRecord) -> EventPayload:
        return cls(
            title=record.title,
            description=record.description,
            category=record.category or "NORMAL",
            event_time=record.due_date,
            severity=record.priority,
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "eventTime": self.event_time,
            "severity": self.severity,
        }


@dataclass(slots=True, frozen=True)
class DeletePayload:
    id: str
    deleted_at: int

    def to_wire(self) -> dict[str, Any]:
        return {}


OperationPayload = TaskPayload | EventPayload | DeletePayload

_PAYLOAD_KINDS: dict[str, type[TaskPayload] | type[EventPayload] | type[DeletePayload]] = {
    "task": TaskPayload,
    "event": EventPayload,
    "delete": DeletePayload,
}


def payload_kind(payload: OperationPayload) -> str:
    if isinstance(payload, TaskPayload):
        return "task"
    if isinstance(payload, EventPayload):
        return "event"
    return "delete"


def payload_for(record: LocalRecord) -> TaskPayload | EventPayload:
    """Snapshot the business fields of a record as its entity's payload type."""
    if record.entity_type == EntityType.EVENT:
        return EventPayload.from_record(record)
    return TaskPayload.from_record(record)


@dataclass(slots=True)
class SyncOperation:
    id: str
    entity_type: EntityType
    entity_id: str
    operation: OperationKind
    timestamp: int
    data: OperationPayload
    status: OperationStatus = OperationStatus.PENDING
    retry_count: int = 0
    error: str | None = None

    def is_eligible(self, max_retries: int = MAX_RETRIES) -> bool:
        if self.status == OperationStatus.PENDING:
            return True
        return self.status == OperationStatus.FAILED and self.retry_count < max_retries

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "operation": self.operation.value,
            "timestamp": self.timestamp,
            "data": {"kind": payload_kind(self.data), **asdict(self.data)},
            "status": self.status.value,
            "retry_count": self.retry_count,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SyncOperation:
        data = dict(raw.get("data") or {})
        kind = str(data.pop("kind", raw.get("entity_type") or "task"))
        payload_cls = _PAYLOAD_KINDS.get(kind)
        if payload_cls is None:
            raise ValueError(f"unknown payload kind: {kind!r}")
        return cls(
            id=str(raw["id"]),
            entity_type=EntityType(raw["entity_type"]),
            entity_id=str(raw["entity_id"]),
            operation=OperationKind(raw["operation"]),
            timestamp=int(raw.get("timestamp") or 0),
            data=payload_cls(**data),
            status=OperationStatus(raw.get("status") or OperationStatus.PENDING),
            retry_count=int(raw.get("retry_count") or 0),
            error=raw.get("error"),
        )


@dataclass(slots=True, frozen=True)
class SyncResult:
    success: int = 0
    failed: int = 0
    total: int = 0


@dataclass(slots=True, frozen=True)
class StorageStats:
    total: int
    active: int
    deleted: int
    pending_sync: int = 0


@dataclass(slots=True, frozen=True)
class SyncStatusReport:
    is_online: bool
    pending_operations: int
    failed_operations: int
    last_sync_time: int
    last_sync_time_formatted: str
