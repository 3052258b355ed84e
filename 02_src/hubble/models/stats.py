"""Statistics and configuration records."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from .logs import utc_now

HUBBLE_VERSION = "0.1.0"


def new_id() -> str:
    """Generate a record id."""
    return uuid.uuid4().hex


@dataclass
class PruneStatistics:
    """Outcome of the most recent prune run."""

    last_prune_date: datetime | None = None
    logs_deleted: int = 0


@dataclass
class HubbleStatistics:
    """Aggregate snapshot. The latest by timestamp is authoritative."""

    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utc_now)
    total_logs: int = 0
    successful_logs: int = 0  # 2xx
    failed_logs: int = 0  # >= 400
    logger_logs: int = 0
    last_prune: PruneStatistics = field(default_factory=PruneStatistics)


@dataclass
class SystemInfo:
    """Static facts about the running capture system."""

    version: str = HUBBLE_VERSION
    database_name: str = ""
    start_time: datetime = field(default_factory=utc_now)


@dataclass
class SystemConfiguration:
    """Active capture and retention settings (singleton record)."""

    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utc_now)
    service_name: str = ""
    time_zone_id: str = ""
    enable_data_prune: bool = False
    data_prune_interval_hours: int = 1
    max_log_age_hours: int = 24
    capture_logger_messages: bool = False
    capture_http_requests: bool = True
    ignore_paths: list[str] = field(default_factory=list)
    ignore_static_files: bool = True
    minimum_log_level: str = "INFO"
    system_info: SystemInfo = field(default_factory=SystemInfo)
