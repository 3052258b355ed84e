"""Stats module."""

from .stats_service import IStatsService, StatsService, validate_configuration

__all__ = ["IStatsService", "StatsService", "validate_configuration"]
