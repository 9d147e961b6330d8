# tests/test_operation_queue.py

from __future__ import annotations

from collections import Counter

from donow_sync.store.models import (
    DeletePayload,
    EntityType,
    EventPayload,
    OperationKind,
    OperationStatus,
    TaskPayload,
)
from donow_sync.sync.operation_queue import OperationQueue


def _pending_per_entity(queue: OperationQueue) -> Counter:
    return Counter(op.entity_id for op in queue.get_all() if op.status == OperationStatus.PENDING)


def test_enqueue_appends_pending_operation(queue: OperationQueue) -> None:
    op = queue.enqueue(EntityType.TASK, "t1", OperationKind.CREATE, TaskPayload(title="a"))

    assert op.status == OperationStatus.PENDING
    assert op.retry_count == 0
    assert op.error is None
    assert queue.get_all() == [op]
    assert queue.pending_count() == 1


def test_create_then_update_collapses_to_latest(queue: OperationQueue) -> None:
    first = queue.enqueue(EntityType.TASK, "T1", OperationKind.CREATE, TaskPayload(title="v1"))
    second = queue.enqueue(EntityType.TASK, "T1", OperationKind.UPDATE, TaskPayload(title="v2", priority="HIGH"))

    ops = queue.get_all()
    assert len(ops) == 1
    assert ops[0].id == first.id == second.id
    assert ops[0].operation == OperationKind.UPDATE
    assert ops[0].data == TaskPayload(title="v2", priority="HIGH")
    assert ops[0].timestamp >= first.timestamp


def test_repeated_edits_keep_one_pending_per_entity(queue: OperationQueue) -> None:
    for i in range(5):
        queue.enqueue(EntityType.TASK, "a", OperationKind.UPDATE, TaskPayload(title=f"a{i}"))
        queue.enqueue(EntityType.TASK, "b", OperationKind.UPDATE, TaskPayload(title=f"b{i}"))
    queue.enqueue(EntityType.TASK, "a", OperationKind.DELETE, DeletePayload(id="a", deleted_at=1))

    counts = _pending_per_entity(queue)
    assert counts == Counter({"a": 1, "b": 1})
    by_entity = {op.entity_id: op for op in queue.get_all()}
    assert by_entity["a"].operation == OperationKind.DELETE
    assert by_entity["b"].data == TaskPayload(title="b4")


def test_non_pending_operation_is_not_overwritten(queue: OperationQueue) -> None:
    first = queue.enqueue(EntityType.TASK, "t1", OperationKind.CREATE, TaskPayload(title="v1"))
    queue.update(first.id, status=OperationStatus.FAILED, retry_count=1, error="HTTP 500")

    second = queue.enqueue(EntityType.TASK, "t1", OperationKind.CREATE, TaskPayload(title="v2"))

    ops = queue.get_all()
    assert [o.id for o in ops] == [first.id, second.id]
    assert ops[0].data == TaskPayload(title="v1")
    assert _pending_per_entity(queue) == Counter({"t1": 1})


def test_update_remove_and_clear(queue: OperationQueue) -> None:
    a = queue.enqueue(EntityType.TASK, "a", OperationKind.CREATE, TaskPayload(title="a"))
    b = queue.enqueue(EntityType.EVENT, "b", OperationKind.CREATE, EventPayload(title="b", category="MEETING"))

    updated = queue.update(a.id, status=OperationStatus.SYNCING)
    assert updated is not None and updated.status == OperationStatus.SYNCING
    assert queue.update("missing", status=OperationStatus.FAILED) is None

    assert queue.remove(a.id) is True
    assert queue.remove(a.id) is False
    assert [o.id for o in queue.get_all()] == [b.id]
    assert queue.get(b.id).data == EventPayload(title="b", category="MEETING")

    queue.clear()
    assert queue.get_all() == []


def test_eligibility_respects_retry_bound(queue: OperationQueue) -> None:
    pending = queue.enqueue(EntityType.TASK, "p", OperationKind.CREATE, TaskPayload(title="p"))
    retry = queue.enqueue(EntityType.TASK, "r", OperationKind.CREATE, TaskPayload(title="r"))
    dead = queue.enqueue(EntityType.TASK, "d", OperationKind.CREATE, TaskPayload(title="d"))
    busy = queue.enqueue(EntityType.TASK, "s", OperationKind.CREATE, TaskPayload(title="s"))

    queue.update(retry.id, status=OperationStatus.FAILED, retry_count=2)
    queue.update(dead.id, status=OperationStatus.FAILED, retry_count=3)
    queue.update(busy.id, status=OperationStatus.SYNCING)

    assert [o.id for o in queue.eligible()] == [pending.id, retry.id]


def test_remove_for_entity(queue: OperationQueue) -> None:
    a = queue.enqueue(EntityType.TASK, "a", OperationKind.CREATE, TaskPayload(title="a"))
    queue.update(a.id, status=OperationStatus.FAILED, retry_count=3)
    queue.enqueue(EntityType.TASK, "a", OperationKind.UPDATE, TaskPayload(title="a2"))
    queue.enqueue(EntityType.TASK, "b", OperationKind.CREATE, TaskPayload(title="b"))

    assert queue.remove_for_entity("a") == 1
    assert [o.id for o in queue.get_all() if o.entity_id == "a"] == [a.id]
    assert queue.remove_for_entity("a", tuple(OperationStatus)) == 1
    assert [o.entity_id for o in queue.get_all()] == ["b"]


def test_queue_persists_typed_payloads(queue: OperationQueue, kv) -> None:
    queue.enqueue(EntityType.TASK, "t", OperationKind.CREATE, TaskPayload(title="t", category_id=3))
    queue.enqueue(EntityType.TASK, "x", OperationKind.DELETE, DeletePayload(id="x", deleted_at=5))

    reopened = OperationQueue(kv)
    data = [op.data for op in reopened.get_all()]
    assert data == [TaskPayload(title="t", category_id=3), DeletePayload(id="x", deleted_at=5)]


def test_claim_returns_latest_stored_entry(queue: OperationQueue) -> None:
    op = queue.enqueue(EntityType.TASK, "t", OperationKind.CREATE, TaskPayload(title="old"))
    queue.enqueue(EntityType.TASK, "t", OperationKind.CREATE, TaskPayload(title="new"))

    claimed = queue.claim(op.id)

    assert claimed is not None
    assert claimed.status == OperationStatus.SYNCING
    assert claimed.data == TaskPayload(title="new")
    assert queue.get(op.id).status == OperationStatus.SYNCING

    # already claimed, exhausted or gone: nothing to claim
    assert queue.claim(op.id) is None
    dead = queue.enqueue(EntityType.TASK, "d", OperationKind.CREATE, TaskPayload(title="d"))
    queue.update(dead.id, status=OperationStatus.FAILED, retry_count=3)
    assert queue.claim(dead.id) is None
    assert queue.claim("missing") is None


def test_retire_exhausted_keeps_retryable_entries(queue: OperationQueue) -> None:
    dead = queue.enqueue(EntityType.TASK, "a", OperationKind.CREATE, TaskPayload(title="a"))
    queue.update(dead.id, status=OperationStatus.FAILED, retry_count=3)
    retry = queue.enqueue(EntityType.TASK, "a", OperationKind.CREATE, TaskPayload(title="a2"))
    queue.update(retry.id, status=OperationStatus.FAILED, retry_count=1)
    other = queue.enqueue(EntityType.TASK, "b", OperationKind.CREATE, TaskPayload(title="b"))
    queue.update(other.id, status=OperationStatus.FAILED, retry_count=3)

    assert queue.failed_count() == 3
    assert queue.retire_exhausted("a") == 1
    assert [o.id for o in queue.get_all()] == [retry.id, other.id]
    assert queue.failed_count() == 2
