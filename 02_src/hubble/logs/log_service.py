"""Read-side operations over envelope records, in the display time zone."""

import dataclasses
from datetime import datetime
from typing import Callable, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..logging_config import get_logger
from ..models import (
    GeneralLog,
    HubbleStatistics,
    LogFilter,
    LogPage,
    SystemConfiguration,
)
from ..storage import IStorage

logger = get_logger(__name__)


def to_display_time(value: datetime, time_zone_id: str | None) -> datetime:
    """Convert a stored UTC timestamp; unknown zones leave it unchanged."""
    if not time_zone_id:
        return value
    try:
        return value.astimezone(ZoneInfo(time_zone_id))
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        logger.debug(f"Display time zone {time_zone_id!r} unavailable: {e}")
        return value


def localize_log(log: GeneralLog, time_zone_id: str | None) -> GeneralLog:
    if not time_zone_id:
        return log
    return dataclasses.replace(
        log,
        timestamp=to_display_time(log.timestamp, time_zone_id),
        database_queries=[
            dataclasses.replace(q, timestamp=to_display_time(q.timestamp, time_zone_id))
            for q in log.database_queries
        ],
    )


def localize_statistics(
    stats: HubbleStatistics, time_zone_id: str | None
) -> HubbleStatistics:
    if not time_zone_id:
        return stats
    last_prune = stats.last_prune
    if last_prune.last_prune_date is not None:
        last_prune = dataclasses.replace(
            last_prune,
            last_prune_date=to_display_time(last_prune.last_prune_date, time_zone_id),
        )
    return dataclasses.replace(
        stats,
        timestamp=to_display_time(stats.timestamp, time_zone_id),
        last_prune=last_prune,
    )


def localize_configuration(config: SystemConfiguration) -> SystemConfiguration:
    """Copy of the record with its timestamps in its own display time zone."""
    time_zone_id = config.time_zone_id
    if not time_zone_id:
        return config
    return dataclasses.replace(
        config,
        timestamp=to_display_time(config.timestamp, time_zone_id),
        system_info=dataclasses.replace(
            config.system_info,
            start_time=to_display_time(config.system_info.start_time, time_zone_id),
        ),
    )


class ILogService(Protocol):
    """Listing, lookup and bulk deletion of envelope records."""

    async def list_logs(self, log_filter: LogFilter) -> LogPage:
        """Filtered page of records, newest first."""
        ...

    async def get_log(self, log_id: str) -> tuple[GeneralLog, list[GeneralLog]] | None:
        """A record and its correlated children."""
        ...

    async def delete_all_logs(self) -> int:
        """Delete every record."""
        ...


class LogService:
    """Pass-through to storage that applies the display time zone."""

    def __init__(
        self,
        storage: IStorage,
        settings: Callable[[], SystemConfiguration],
    ):
        self._storage = storage
        self._settings = settings

    async def list_logs(self, log_filter: LogFilter) -> LogPage:
        logs = await self._storage.find_logs(log_filter)
        total = await self._storage.count_logs(log_filter)
        tz = self._settings().time_zone_id
        return LogPage(
            logs=[localize_log(log, tz) for log in logs],
            page=log_filter.page,
            page_size=log_filter.page_size,
            total_count=total,
        )

    async def get_log(self, log_id: str) -> tuple[GeneralLog, list[GeneralLog]] | None:
        log = await self._storage.get_log(log_id)
        if log is None:
            return None
        related = await self._storage.get_related_logs(log_id)
        tz = self._settings().time_zone_id
        return localize_log(log, tz), [localize_log(r, tz) for r in related]

    async def delete_all_logs(self) -> int:
        deleted = await self._storage.delete_all_logs()
        logger.info(f"Deleted all logs ({deleted} records)")
        return deleted
