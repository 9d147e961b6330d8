# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from donow_sync.config import Settings
from donow_sync.core.state import AppState
from donow_sync.services.record_service import RecordService
from donow_sync.store.credentials import CredentialStore
from donow_sync.store.kv_store import KeyValueStore
from donow_sync.store.models import EntityType
from donow_sync.store.record_store import RecordStore
from donow_sync.sync.operation_queue import OperationQueue
from donow_sync.sync.sync_engine import SyncEngine
from donow_sync.sync.sync_scheduler import SyncScheduler

from .fakes import FakeConnectivity, FakeRemoteApi, FakeTokens


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings pointing at a per-test directory.

    Built directly rather than from the environment to keep unit tests
    isolated and deterministic.
    """
    return Settings(
        app_name="donow-test",
        log_level="DEBUG",
        api_url="http://donow.test/api",
        http_timeout_seconds=5.0,
        auto_sync=False,
        sync_interval_ms=60_000,
        connectivity_poll_seconds=10.0,
        max_retries=3,
        data_dir=tmp_path,
        store_path=tmp_path / "donow.sqlite3",
    )


@pytest.fixture()
def kv(settings: Settings) -> KeyValueStore:
    # Real SQLite: its atomicity is part of what we want to test.
    return KeyValueStore(settings.store_path)


@pytest.fixture()
def task_store(kv: KeyValueStore) -> RecordStore:
    return RecordStore(kv, EntityType.TASK)


@pytest.fixture()
def event_store(kv: KeyValueStore) -> RecordStore:
    return RecordStore(kv, EntityType.EVENT)


@pytest.fixture()
def queue(kv: KeyValueStore) -> OperationQueue:
    return OperationQueue(kv)


@pytest.fixture()
def remote() -> FakeRemoteApi:
    return FakeRemoteApi()


@pytest.fixture()
def connectivity() -> FakeConnectivity:
    return FakeConnectivity(online=True)


@pytest.fixture()
def tokens() -> FakeTokens:
    return FakeTokens()


@pytest.fixture()
def engine(
    task_store: RecordStore,
    event_store: RecordStore,
    queue: OperationQueue,
    remote: FakeRemoteApi,
    connectivity: FakeConnectivity,
    tokens: FakeTokens,
) -> SyncEngine:
    return SyncEngine(
        stores=(task_store, event_store),
        queue=queue,
        remote=remote,
        connectivity=connectivity,
        tokens=tokens,
    )


@pytest.fixture()
def tasks(task_store: RecordStore, queue: OperationQueue, engine: SyncEngine) -> RecordService:
    return RecordService(task_store, queue, engine)


@pytest.fixture()
def state(
    settings: Settings,
    kv: KeyValueStore,
    task_store: RecordStore,
    event_store: RecordStore,
    queue: OperationQueue,
    remote: FakeRemoteApi,
    connectivity: FakeConnectivity,
    engine: SyncEngine,
) -> AppState:
    """AppState wired with the real stores and deterministic network fakes."""
    credentials = CredentialStore(kv)
    credentials.set_token("test-token")
    return AppState(
        settings=settings,
        kv=kv,
        credentials=credentials,
        queue=queue,
        tasks=RecordService(task_store, queue, engine),
        events=RecordService(event_store, queue, engine),
        remote=remote,  # type: ignore[arg-type]
        connectivity=connectivity,  # type: ignore[arg-type]
        engine=engine,
        scheduler=SyncScheduler(engine, connectivity),
    )
