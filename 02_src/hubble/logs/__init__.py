"""Logs module."""

from .log_service import (
    ILogService,
    LogService,
    localize_configuration,
    localize_log,
    localize_statistics,
    to_display_time,
)

__all__ = [
    "ILogService",
    "LogService",
    "localize_configuration",
    "localize_log",
    "localize_statistics",
    "to_display_time",
]
