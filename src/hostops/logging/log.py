# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/logging/log.py

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from hostops.config.models import LoggingSettings

LOGGER_NAME = "hostops"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(run_id).8s | %(host)-12s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class RunLog:
    run_id: str
    log_path: Optional[Path] = None


_current: Optional[RunLog] = None


class _RunContext(logging.Filter):
    """Fills in run_id/host for records that were not logged through host_logger()."""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = self.run_id
        if not hasattr(record, "host"):
            record.host = "-"
        return True


def init_logging(settings: Optional[LoggingSettings] = None, *, run_id: Optional[str] = None) -> RunLog:
    """
    Set up the ``hostops`` logger for one run:
      - a full-trace log file at DEBUG (every command sent to every host)
      - a console handler at INFO, or DEBUG when verbose
    Every line carries the run id and the host it concerns. Calling it again
    replaces the handlers and starts a new run.
    """
    global _current
    settings = settings or LoggingSettings()
    run_id = run_id or str(uuid.uuid4())

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    context = _RunContext(run_id)

    log_path = None
    if settings.to_file:
        base_dir = Path(settings.log_dir).expanduser() if settings.log_dir else Path.home() / ".hostops" / "logs"
        base_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        log_path = base_dir / f"{LOGGER_NAME}-{ts}-{run_id}.log"

        fh = logging.FileHandler(log_path)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        fh.addFilter(context)
        logger.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if settings.verbose else logging.INFO)
    ch.setFormatter(formatter)
    ch.addFilter(context)
    logger.addHandler(ch)

    _current = RunLog(run_id=run_id, log_path=log_path)
    logger.info("=== hostops run started (log file: %s) ===", log_path or "disabled")
    return _current


def current_run() -> Optional[RunLog]:
    return _current


def host_logger(hostname: str, run: Optional[RunLog] = None) -> logging.LoggerAdapter:
    """Logger whose records are tagged with *hostname* and the run id."""
    run = run or _current
    return logging.LoggerAdapter(
        logging.getLogger(LOGGER_NAME),
        {"host": hostname, "run_id": run.run_id if run else "-"},
    )


def reset_logging() -> None:
    """Drop the handlers init_logging() installed and forget the current run."""
    global _current
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    _current = None
