# src/donow_sync/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..config import Settings
from ..services.record_service import RecordService
from ..store.credentials import CredentialStore
from ..store.kv_store import KeyValueStore
from ..sync.connectivity import ConnectivityMonitor
from ..sync.operation_queue import OperationQueue
from ..sync.remote_api import RemoteApiClient
from ..sync.sync_engine import SyncEngine
from ..sync.sync_scheduler import SyncScheduler


@dataclass
class AppState:
    """Everything the CLI needs, wired once in cli/bootstrap.py."""

    settings: Settings

    kv: KeyValueStore
    credentials: CredentialStore
    queue: OperationQueue

    tasks: RecordService
    events: RecordService

    remote: RemoteApiClient
    connectivity: ConnectivityMonitor
    engine: SyncEngine
    scheduler: SyncScheduler
