"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "hubble.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DEFAULT_REDACTED_HEADERS = ["authorization", "cookie", "x-api-key"]


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve HUBBLE_DATABASE_URL to an absolute path."""
    if not env_value:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class HubbleOptions:
    """Bootstrap options. Seed the persisted configuration record on first run."""

    service_name: str = "HubbleService"
    base_path: str = "/hubble"
    api_prefix: str = "/api/hubble"
    ignore_paths: list[str] = field(default_factory=list)
    ignore_static_files: bool = True
    enable_diagnostics: bool = False
    capture_http_requests: bool = True
    capture_logger_messages: bool = False
    minimum_log_level: str = "INFO"
    enable_data_prune: bool = False
    data_prune_interval_hours: int = 1
    max_log_age_hours: int = 24
    time_zone_id: str = ""
    prune_schedule: str = "requests"  # "requests" or "timer"
    database_url: str | None = None
    redacted_headers: list[str] = field(
        default_factory=lambda: list(DEFAULT_REDACTED_HEADERS)
    )

    @classmethod
    def from_env(cls) -> "HubbleOptions":
        """Build options from HUBBLE_* environment variables."""
        defaults = cls()
        return cls(
            service_name=os.getenv("HUBBLE_SERVICE_NAME", defaults.service_name),
            base_path=os.getenv("HUBBLE_BASE_PATH", defaults.base_path),
            api_prefix=os.getenv("HUBBLE_API_PREFIX", defaults.api_prefix),
            ignore_paths=_env_list("HUBBLE_IGNORE_PATHS", defaults.ignore_paths),
            ignore_static_files=_env_bool(
                "HUBBLE_IGNORE_STATIC_FILES", defaults.ignore_static_files
            ),
            enable_diagnostics=_env_bool(
                "HUBBLE_ENABLE_DIAGNOSTICS", defaults.enable_diagnostics
            ),
            capture_http_requests=_env_bool(
                "HUBBLE_CAPTURE_HTTP_REQUESTS", defaults.capture_http_requests
            ),
            capture_logger_messages=_env_bool(
                "HUBBLE_CAPTURE_LOGGER_MESSAGES", defaults.capture_logger_messages
            ),
            minimum_log_level=os.getenv(
                "HUBBLE_MINIMUM_LOG_LEVEL", defaults.minimum_log_level
            ),
            enable_data_prune=_env_bool(
                "HUBBLE_ENABLE_DATA_PRUNE", defaults.enable_data_prune
            ),
            data_prune_interval_hours=_env_int(
                "HUBBLE_DATA_PRUNE_INTERVAL_HOURS", defaults.data_prune_interval_hours
            ),
            max_log_age_hours=_env_int(
                "HUBBLE_MAX_LOG_AGE_HOURS", defaults.max_log_age_hours
            ),
            time_zone_id=os.getenv("HUBBLE_TIME_ZONE_ID", defaults.time_zone_id),
            prune_schedule=os.getenv("HUBBLE_PRUNE_SCHEDULE", defaults.prune_schedule),
            database_url=os.getenv("HUBBLE_DATABASE_URL"),
            redacted_headers=_env_list(
                "HUBBLE_REDACTED_HEADERS", defaults.redacted_headers
            ),
        )
