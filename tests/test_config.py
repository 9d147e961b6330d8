# tests/test_config.py

from __future__ import annotations

import os
from pathlib import Path

import pytest

from donow_sync import config
from donow_sync.config import Settings


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in list(os.environ):
        if name.startswith("DONOW_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "_load_dotenv_if_available", lambda: None)
    return monkeypatch


def test_defaults(clean_env) -> None:
    s = Settings.from_env()

    assert s.api_url == "http://localhost:8080/api"
    assert s.sync_interval_ms == 60_000
    assert s.http_timeout_seconds == 15.0
    assert s.max_retries == 3
    assert s.auto_sync is True
    assert s.store_path == Path(".local/donow") / "donow.sqlite3"


def test_overrides_and_clamping(clean_env, tmp_path: Path) -> None:
    clean_env.setenv("DONOW_API_URL", "https://api.donow.example/v1/")
    clean_env.setenv("DONOW_SYNC_INTERVAL_MS", "10")
    clean_env.setenv("DONOW_MAX_RETRIES", "not-a-number")
    clean_env.setenv("DONOW_AUTO_SYNC", "off")
    clean_env.setenv("DONOW_DATA_DIR", str(tmp_path))

    s = Settings.from_env()

    assert s.api_url == "https://api.donow.example/v1"
    assert s.sync_interval_ms == 1000
    assert s.max_retries == 3
    assert s.auto_sync is False
    assert s.data_dir == tmp_path
    assert s.store_path == tmp_path / "donow.sqlite3"


def test_get_settings_is_cached(clean_env) -> None:
    clean_env.setattr(config, "_SETTINGS", None)
    first = config.get_settings()
    clean_env.setenv("DONOW_APP_NAME", "changed")
    assert config.get_settings() is first
