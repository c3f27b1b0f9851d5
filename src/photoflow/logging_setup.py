# src/photoflow/logging_setup.py

"""
Logging for the photoflow process.

The console serves the interactive REPL, so per-job chatter from the worker
thread is held back there; photoflow.log keeps the whole story (rotated).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOG_FILE_NAME = "photoflow.log"

# Loggers that speak once per job / claim / transition.
WORKER_LOGGERS: tuple[str, ...] = (
    "photoflow.tasks.worker_loop",
    "photoflow.tasks.task_advancer",
    "photoflow.tasks.job_store",
    "photoflow.tasks.handlers",
)


def resolve_log_level(level: Any, *, default: int = logging.INFO) -> int:
    """PHOTOFLOW_LOG_LEVEL value ("debug", "20", 20, None) -> numeric level."""
    if level is None:
        return default
    if isinstance(level, int):
        return level
    name = str(level).strip()
    if not name:
        return default
    if name.isdigit():
        return int(name)
    value = getattr(logging, name.upper(), None)
    return value if isinstance(value, int) else default


class _ConsoleNoiseFilter(logging.Filter):
    """photoflow logs pass; worker loggers only from WARNING; everything else only from ERROR."""

    def __init__(self, quiet: Iterable[str] = WORKER_LOGGERS) -> None:
        super().__init__()
        self._quiet = tuple(quiet)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith("photoflow."):
            if self._quiet and name.startswith(self._quiet):
                return record.levelno >= logging.WARNING
            return True
        # Third-party loggers and captured py.warnings.
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/photoflow",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    quiet_loggers: Iterable[str] = WORKER_LOGGERS,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> Path:
    """
    Install the console and file handlers on the root logger; returns the log file path.

    Call once from the entry point, before the worker thread starts. Calling it
    again replaces the handlers instead of stacking them.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    # The worker runs on "photoflow-worker"; the thread name tells REPL and worker lines apart.
    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter(quiet_loggers))
    root.addHandler(console)

    jobs_log = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    jobs_log.setLevel(file_level)
    jobs_log.setFormatter(fmt)
    root.addHandler(jobs_log)

    logging.captureWarnings(True)
    return log_file
