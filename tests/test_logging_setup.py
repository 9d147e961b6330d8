# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from donow_sync.logging_setup import _ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("donow_sync.sync.sync_engine", logging.INFO, False),
        ("donow_sync.sync.sync_engine", logging.WARNING, True),
        ("donow_sync.sync.connectivity", logging.INFO, False),
        ("donow_sync.services.record_service", logging.INFO, False),
        ("donow_sync.store.kv_store", logging.ERROR, True),
        ("donow_sync.cli.main", logging.INFO, True),
        ("httpx", logging.WARNING, False),
        ("py.warnings", logging.ERROR, True),
    ],
)
def test_console_filter_thresholds(name: str, level: int, shown: bool) -> None:
    assert _ConsoleNoiseFilter().filter(_record(name, level)) is shown


@pytest.fixture()
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


def test_setup_logging_writes_file_and_filters_console(tmp_path: Path, restore_root_logger) -> None:
    setup_logging(log_dir=tmp_path, console_level=logging.INFO)

    console, file_handler = restore_root_logger.handlers
    assert any(isinstance(f, _ConsoleNoiseFilter) for f in console.filters)
    assert file_handler.filters == []

    logging.getLogger("donow_sync.sync.sync_engine").info("Syncing %d operations...", 2)
    file_handler.flush()
    assert "Syncing 2 operations..." in (tmp_path / "donow-sync.log").read_text(encoding="utf-8")


def test_debug_console_is_unfiltered(tmp_path: Path, restore_root_logger) -> None:
    setup_logging(log_dir=tmp_path, console_level=logging.DEBUG)

    console = restore_root_logger.handlers[0]
    assert console.filters == []
