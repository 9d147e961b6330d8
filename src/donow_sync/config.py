# src/donow_sync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time (the API token lives in the local store).
- Every value has a sane default so the client can run fully offline.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "DONOW"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except ImportError:
        return
    load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Remote API ----
    api_url: str
    http_timeout_seconds: float

    # ---- Sync tuning ----
    auto_sync: bool
    sync_interval_ms: int
    connectivity_poll_seconds: float
    max_retries: int

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    store_path: Path

    @staticmethod
    def from_env() -> "Settings":
        _load_dotenv_if_available()

        app_name = _env(_k("APP_NAME"), "donow") or "donow"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        api_url = (_env(_k("API_URL"), "http://localhost:8080/api") or "").strip().rstrip("/")
        http_timeout_seconds = max(1.0, _env_float(_k("HTTP_TIMEOUT_SECONDS"), 15.0))

        auto_sync = _env_bool(_k("AUTO_SYNC"), True)
        sync_interval_ms = max(1000, _env_int(_k("SYNC_INTERVAL_MS"), 60_000))
        connectivity_poll_seconds = max(0.5, _env_float(_k("CONNECTIVITY_POLL_SECONDS"), 10.0))
        max_retries = max(1, _env_int(_k("MAX_RETRIES"), 3))

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/donow"))
        store_path = _env_path(_k("STORE_PATH"), data_dir / "donow.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            api_url=api_url,
            http_timeout_seconds=http_timeout_seconds,
            auto_sync=auto_sync,
            sync_interval_ms=sync_interval_ms,
            connectivity_poll_seconds=connectivity_poll_seconds,
            max_retries=max_retries,
            data_dir=data_dir,
            store_path=store_path,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
