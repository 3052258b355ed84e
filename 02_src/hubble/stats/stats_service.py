"""Aggregate statistics and the persisted configuration record."""

import dataclasses
from datetime import datetime
from typing import Protocol

from ..config import HubbleOptions
from ..logging_config import get_logger
from ..models import (
    HubbleStatistics,
    PruneStatistics,
    SystemConfiguration,
    SystemInfo,
    utc_now,
)
from ..storage import IStorage

logger = get_logger(__name__)


def validate_configuration(config: SystemConfiguration) -> SystemConfiguration:
    """Normalize a configuration record; raise ValueError when it is unusable."""
    if config.data_prune_interval_hours < 1:
        raise ValueError("data_prune_interval_hours must be at least 1")
    if config.max_log_age_hours < 1:
        raise ValueError("max_log_age_hours must be at least 1")
    config.ignore_paths = [p.strip() for p in config.ignore_paths if p and p.strip()]
    config.minimum_log_level = (config.minimum_log_level or "INFO").upper()
    return config


class IStatsService(Protocol):
    """Statistics snapshots and the configuration singleton."""

    @property
    def current_configuration(self) -> SystemConfiguration:
        """Cached configuration, read on every request."""
        ...

    async def get_statistics(self) -> HubbleStatistics:
        """Latest snapshot, computing one if none exists."""
        ...

    async def recalculate_statistics(self) -> HubbleStatistics:
        """Full recount of every classification bucket."""
        ...

    async def update_prune_statistics(
        self, prune_date: datetime, logs_deleted: int
    ) -> HubbleStatistics:
        """Record the outcome of a prune run."""
        ...

    async def get_configuration(self) -> SystemConfiguration:
        """Configuration record, created with defaults on first read."""
        ...

    async def save_configuration(
        self, config: SystemConfiguration
    ) -> SystemConfiguration:
        """Replace the configuration record."""
        ...


class StatsService:
    """Statistics and configuration backed by the document store."""

    def __init__(self, storage: IStorage, options: HubbleOptions | None = None):
        self._storage = storage
        self._options = options or HubbleOptions()
        self._config: SystemConfiguration | None = None

    @property
    def current_configuration(self) -> SystemConfiguration:
        if self._config is None:
            return self._default_configuration()
        return self._config

    # Statistics
    async def get_statistics(self) -> HubbleStatistics:
        stats = await self._storage.get_latest_statistics()
        if stats is None:
            return await self.recalculate_statistics()
        return stats

    async def recalculate_statistics(self) -> HubbleStatistics:
        counts = await self._storage.aggregate_log_counts()
        stats = HubbleStatistics(timestamp=utc_now(), **counts)

        previous = await self._storage.get_latest_statistics()
        if previous is not None and previous.last_prune.last_prune_date is not None:
            stats.last_prune = previous.last_prune

        await self._storage.save_statistics(stats)
        return stats

    async def update_prune_statistics(
        self, prune_date: datetime, logs_deleted: int
    ) -> HubbleStatistics:
        stats = await self._storage.get_latest_statistics() or HubbleStatistics()
        counts = await self._storage.aggregate_log_counts()

        stats = dataclasses.replace(
            stats,
            timestamp=utc_now(),
            last_prune=PruneStatistics(
                last_prune_date=prune_date, logs_deleted=logs_deleted
            ),
            **counts,
        )
        await self._storage.save_statistics(stats)
        return stats

    # Configuration
    async def get_configuration(self) -> SystemConfiguration:
        if self._config is not None:
            return self._config

        config = await self._storage.get_configuration()
        if config is None:
            config = self._default_configuration()
            await self._storage.save_configuration(config)
            logger.info("Created initial Hubble configuration")

        self._config = config
        return config

    async def reload_configuration(self) -> SystemConfiguration:
        """Drop the cache and read (or recreate) the stored record."""
        self._config = None
        return await self.get_configuration()

    async def save_configuration(
        self, config: SystemConfiguration
    ) -> SystemConfiguration:
        config = validate_configuration(dataclasses.replace(config))
        config.timestamp = utc_now()
        await self._storage.save_configuration(config)
        self._config = config
        return config

    async def save_retention_settings(
        self, enable_data_prune: bool, interval_hours: int, max_age_hours: int
    ) -> SystemConfiguration:
        current = await self.get_configuration()
        return await self.save_configuration(
            dataclasses.replace(
                current,
                enable_data_prune=enable_data_prune,
                data_prune_interval_hours=interval_hours,
                max_log_age_hours=max_age_hours,
            )
        )

    async def save_capture_settings(
        self, capture_http_requests: bool, capture_logger_messages: bool
    ) -> SystemConfiguration:
        current = await self.get_configuration()
        return await self.save_configuration(
            dataclasses.replace(
                current,
                capture_http_requests=capture_http_requests,
                capture_logger_messages=capture_logger_messages,
            )
        )

    async def save_ignore_paths(self, ignore_paths: list[str]) -> SystemConfiguration:
        current = await self.get_configuration()
        return await self.save_configuration(
            dataclasses.replace(current, ignore_paths=list(ignore_paths))
        )

    def _default_configuration(self) -> SystemConfiguration:
        options = self._options
        return SystemConfiguration(
            service_name=options.service_name,
            time_zone_id=options.time_zone_id,
            enable_data_prune=options.enable_data_prune,
            data_prune_interval_hours=max(1, options.data_prune_interval_hours),
            max_log_age_hours=max(1, options.max_log_age_hours),
            capture_logger_messages=options.capture_logger_messages,
            capture_http_requests=options.capture_http_requests,
            ignore_paths=list(options.ignore_paths),
            ignore_static_files=options.ignore_static_files,
            minimum_log_level=options.minimum_log_level.upper(),
            system_info=SystemInfo(
                database_name=getattr(self._storage, "database_name", ""),
            ),
        )
