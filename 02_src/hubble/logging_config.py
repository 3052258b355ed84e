"""Logging for Hubble's own diagnostics and for the host process.

Records are written as one JSON object per line. Records emitted while a
captured request is in flight carry ``request_id``, the id of its root
envelope record, so Hubble's own warnings can be matched to the stored
request they concern.
"""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import DEFAULT_LOG_PATH

# Driver loggers that are noisy at DEBUG/INFO
QUIET_LOGGERS = {
    "aiosqlite": "WARNING",
    "sqlalchemy.engine": "WARNING",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with request correlation when available."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        request_id = getattr(record, "request_id", None)
        if request_id:
            entry["request_id"] = request_id

        # extra={"context": {...}} from the caller
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def build_logging_config(log_level: str, log_file: str | None) -> dict[str, Any]:
    """dictConfig schema: console always, rotating file when log_file is set."""
    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request"],
            "stream": "ext://sys.stdout",
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "json",
            "filters": ["request"],
            "encoding": "utf-8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": JSONFormatter}},
        "filters": {"request": {"()": "hubble.correlation.RequestIdFilter"}},
        "handlers": handlers,
        "loggers": {name: {"level": level} for name, level in QUIET_LOGGERS.items()},
        "root": {"level": log_level.upper(), "handlers": list(handlers)},
    }


def setup_logging(log_level: str | None = None, log_file: str | None = None) -> None:
    """Configure the root logger for a host process running Hubble.

    LOG_LEVEL and LOG_FILE fill in missing arguments. An empty LOG_FILE
    disables the file handler.
    """
    log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
    if log_file is None:
        log_file = os.getenv("LOG_FILE", str(DEFAULT_LOG_PATH))

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(build_logging_config(log_level, log_file))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
