"""Core data models for Hubble."""

from .logs import (
    DIAGNOSTIC_LABEL,
    DIAGNOSTIC_METHOD,
    UNKNOWN,
    DatabaseQuery,
    GeneralLog,
    OperationType,
    utc_now,
)
from .stats import (
    HubbleStatistics,
    PruneStatistics,
    SystemConfiguration,
    SystemInfo,
)
from .filters import LogFilter, LogPage

__all__ = [
    # Envelopes
    "GeneralLog",
    "DatabaseQuery",
    "OperationType",
    "DIAGNOSTIC_LABEL",
    "DIAGNOSTIC_METHOD",
    "UNKNOWN",
    "utc_now",
    # Statistics / configuration
    "HubbleStatistics",
    "PruneStatistics",
    "SystemConfiguration",
    "SystemInfo",
    # Listing
    "LogFilter",
    "LogPage",
]
