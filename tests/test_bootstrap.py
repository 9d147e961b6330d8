# tests/test_bootstrap.py

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from donow_sync.cli.bootstrap import create_initial_state
from donow_sync.config import Settings
from donow_sync.store.credentials import CredentialStore
from donow_sync.store.kv_store import KeyValueStore
from donow_sync.store.models import EntityType
from donow_sync.sync.remote_api import RemoteApiClient


def test_credentials_roundtrip(kv: KeyValueStore) -> None:
    creds = CredentialStore(kv)
    assert creds.get_token() is None

    creds.set_token("  abc  ")
    assert creds.get_token() == "abc"
    assert CredentialStore(kv).get_token() == "abc"

    with pytest.raises(ValueError):
        creds.set_token("   ")

    creds.clear_token()
    assert creds.get_token() is None


@pytest.mark.asyncio
async def test_create_initial_state_wires_components(settings: Settings, tmp_path: Path) -> None:
    settings = replace(settings, data_dir=tmp_path / "data", store_path=tmp_path / "data" / "db" / "donow.sqlite3")

    state = create_initial_state(settings=settings)

    assert settings.store_path.exists()
    assert state.tasks.entity_type == EntityType.TASK
    assert state.events.entity_type == EntityType.EVENT
    assert isinstance(state.remote, RemoteApiClient)
    assert state.remote.base_url == settings.api_url
    assert state.engine.max_retries == settings.max_retries

    # shared queue and credentials
    assert state.tasks.queue is state.events.queue is state.queue
    state.credentials.set_token("t")
    assert CredentialStore(state.kv).get_token() == "t"

    await state.remote.aclose()
