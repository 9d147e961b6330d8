# src/donow_sync/store/kv_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..core.errors import StorageError

logger = logging.getLogger(__name__)

TASKS_KEY = "donow.tasks"
EVENTS_KEY = "donow.events"
SYNC_QUEUE_KEY = "donow.sync_queue"
LAST_SYNC_KEY = "donow.last_sync"
AUTH_TOKEN_KEY = "donow.auth_token"


class KeyValueStore:
    """
    SQLite-backed JSON key-value store.

    Every logical collection (tasks, events, sync queue, last-sync time) is a
    single row holding one JSON document, the same way the mobile client keeps
    them in AsyncStorage.

    Atomicity:
    - update() runs read-modify-write inside BEGIN IMMEDIATE, so concurrent
      writers (other processes included) serialize on the row.
    - an in-process lock serializes callers sharing this instance.
    - a failed write rolls back; the previously stored value is untouched.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "donow.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._lock = threading.RLock()
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._ensure_schema()
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"cannot open key-value store at {self._db_path}: {exc}") from exc
        logger.info("KeyValueStore ready db=%s", self._db_path)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are managed explicitly below.
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
        finally:
            conn.close()

    @staticmethod
    def _encode(key: str, value: Any) -> str:
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"cannot serialize value for {key!r}: {exc}") from exc

    @staticmethod
    def _decode(key: str, raw: str) -> Any:
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise StorageError(f"corrupt JSON stored under {key!r}: {exc}") from exc

    @staticmethod
    def _read(conn: sqlite3.Connection, key: str) -> str | None:
        row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return None if row is None else str(row[0])

    @staticmethod
    def _write(conn: sqlite3.Connection, key: str, encoded: str) -> None:
        conn.execute(
            """
            INSERT INTO kv(key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, encoded, time.time()),
        )

    # ---- public API ----

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            try:
                conn = self._get_conn()
                try:
                    raw = self._read(conn, key)
                finally:
                    conn.close()
            except sqlite3.Error as exc:
                raise StorageError(f"read failed for {key!r}: {exc}") from exc
        if raw is None:
            return default
        return self._decode(key, raw)

    def set(self, key: str, value: Any) -> None:
        encoded = self._encode(key, value)
        with self._lock:
            try:
                conn = self._get_conn()
                try:
                    self._write(conn, key, encoded)
                finally:
                    conn.close()
            except sqlite3.Error as exc:
                raise StorageError(f"write failed for {key!r}: {exc}") from exc

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """
        Atomically replace the value under key with fn(current).

        fn receives the decoded current value (or default) and returns the new
        value, which is stored and returned. If fn raises, nothing is written
        and the exception propagates.
        """
        with self._lock:
            try:
                conn = self._get_conn()
            except sqlite3.Error as exc:
                raise StorageError(f"cannot connect for {key!r}: {exc}") from exc
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    raw = self._read(conn, key)
                    current = default if raw is None else self._decode(key, raw)
                    new_value = fn(current)
                    self._write(conn, key, self._encode(key, new_value))
                    conn.execute("COMMIT")
                except BaseException:
                    with contextlib.suppress(sqlite3.Error):
                        conn.execute("ROLLBACK")
                    raise
                return new_value
            except sqlite3.Error as exc:
                raise StorageError(f"read-modify-write failed for {key!r}: {exc}") from exc
            finally:
                conn.close()

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        placeholders = ",".join("?" for _ in keys)
        with self._lock:
            try:
                conn = self._get_conn()
                try:
                    conn.execute(f"DELETE FROM kv WHERE key IN ({placeholders})", keys)
                finally:
                    conn.close()
            except sqlite3.Error as exc:
                raise StorageError(f"delete failed for {keys!r}: {exc}") from exc
