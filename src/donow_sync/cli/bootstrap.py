# src/donow_sync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations (SQLite store, httpx client, connectivity
  probe, sync engine, scheduler) into AppState.
"""

from __future__ import annotations

import logging

from ..config import Settings, get_settings
from ..core.state import AppState
from ..services.record_service import RecordService
from ..store.credentials import CredentialStore
from ..store.kv_store import KeyValueStore
from ..store.models import EntityType
from ..store.record_store import RecordStore
from ..sync.connectivity import ConnectivityMonitor, HttpReachabilityProbe
from ..sync.operation_queue import OperationQueue
from ..sync.remote_api import RemoteApiClient
from ..sync.sync_engine import SyncEngine
from ..sync.sync_scheduler import SyncScheduler

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.store_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings: Settings | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    kv = KeyValueStore(settings.store_path)
    credentials = CredentialStore(kv)
    queue = OperationQueue(kv)
    task_store = RecordStore(kv, EntityType.TASK)
    event_store = RecordStore(kv, EntityType.EVENT)

    remote = RemoteApiClient(settings.api_url, timeout=settings.http_timeout_seconds)
    connectivity = ConnectivityMonitor(
        HttpReachabilityProbe(settings.api_url, timeout=min(5.0, settings.http_timeout_seconds))
    )
    engine = SyncEngine(
        stores=(task_store, event_store),
        queue=queue,
        remote=remote,
        connectivity=connectivity,
        tokens=credentials,
        max_retries=settings.max_retries,
    )

    state = AppState(
        settings=settings,
        kv=kv,
        credentials=credentials,
        queue=queue,
        tasks=RecordService(task_store, queue, engine),
        events=RecordService(event_store, queue, engine),
        remote=remote,
        connectivity=connectivity,
        engine=engine,
        scheduler=SyncScheduler(engine, connectivity),
    )
    logger.info("State ready store=%s api=%s", settings.store_path, settings.api_url)
    return state
