# src/donow_sync/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the REPL readable while sync runs in the background.

    Per-logger console thresholds (the log file still gets everything):
    - sync internals (engine runs, HTTP calls, queue writes, connectivity
      polling, the auto-sync timer) fire on every tick: WARNING+
    - record service and stores: their INFO lines repeat what the command
      reply already printed: WARNING+
    - the rest of donow_sync (cli, bootstrap): everything
    - third-party loggers and captured Python warnings: ERROR+
    """

    _THRESHOLDS: tuple[tuple[str, int], ...] = (
        ("donow_sync.sync.", logging.WARNING),
        ("donow_sync.services.", logging.WARNING),
        ("donow_sync.store.", logging.WARNING),
        ("donow_sync.", logging.NOTSET),
    )

    def filter(self, record: logging.LogRecord) -> bool:
        for prefix, threshold in self._THRESHOLDS:
            if record.name.startswith(prefix):
                return record.levelno >= threshold
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/donow",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure logging with:
    - Console handler: readable + filtered for interactive use
    - File handler: full logs for debugging

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "donow-sync.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    if console_level > logging.DEBUG:
        # DONOW_LOG_LEVEL=DEBUG shows background sync on the console too.
        ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)

    # httpx logs every request at INFO; keep the file readable.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
