"""Statistics, pruning and configuration API routes."""

from dataclasses import asdict, replace
from datetime import datetime

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException

from ...app import Application
from ...logs import localize_configuration, localize_statistics, to_display_time
from ...pruning import PruneInProgressError


class PruneResponse(BaseModel):
    """Response model for a manual prune."""

    started_at: datetime
    cutoff: datetime
    deleted_count: int


class PruneStatisticsResponse(BaseModel):
    last_prune_date: datetime | None = None
    logs_deleted: int = 0


class StatisticsResponse(BaseModel):
    """Response model for a statistics snapshot."""

    id: str
    timestamp: datetime
    total_logs: int
    successful_logs: int
    failed_logs: int
    logger_logs: int
    last_prune: PruneStatisticsResponse


class SystemInfoResponse(BaseModel):
    version: str
    database_name: str
    start_time: datetime


class ConfigurationResponse(BaseModel):
    """Response model for the configuration record."""

    id: str
    timestamp: datetime
    service_name: str
    time_zone_id: str
    enable_data_prune: bool
    data_prune_interval_hours: int
    max_log_age_hours: int
    capture_logger_messages: bool
    capture_http_requests: bool
    ignore_paths: list[str]
    ignore_static_files: bool
    minimum_log_level: str
    system_info: SystemInfoResponse


class RetentionSettingsRequest(BaseModel):
    """Request model for retention settings."""

    enable_data_prune: bool
    data_prune_interval_hours: int = 1
    max_log_age_hours: int = 24


class CaptureSettingsRequest(BaseModel):
    """Request model for capture settings."""

    capture_http_requests: bool
    capture_logger_messages: bool


class IgnorePathsRequest(BaseModel):
    """Request model for the ignore-path list."""

    ignore_paths: list[str]


def create_admin_router(app: Application) -> APIRouter:
    """Create statistics, pruning and configuration router."""
    router = APIRouter(prefix=app.options.api_prefix, tags=["hubble-admin"])

    @router.post("/prune", response_model=PruneResponse)
    async def prune_now() -> dict:
        """Run a prune pass now, regardless of the interval."""
        try:
            result = await app.pruner.prune_now()
        except PruneInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e))

        if result is None:
            raise HTTPException(status_code=500, detail="Prune failed")
        time_zone_id = app.settings().time_zone_id
        return asdict(
            replace(
                result,
                started_at=to_display_time(result.started_at, time_zone_id),
                cutoff=to_display_time(result.cutoff, time_zone_id),
            )
        )

    @router.get("/stats", response_model=StatisticsResponse)
    async def get_statistics() -> dict:
        """Latest statistics snapshot."""
        stats = await app.stats.get_statistics()
        return asdict(localize_statistics(stats, app.settings().time_zone_id))

    @router.post("/stats/recalculate", response_model=StatisticsResponse)
    async def recalculate_statistics() -> dict:
        """Recount every classification bucket."""
        stats = await app.stats.recalculate_statistics()
        return asdict(localize_statistics(stats, app.settings().time_zone_id))

    @router.get("/config", response_model=ConfigurationResponse)
    async def get_configuration() -> dict:
        """Active configuration record."""
        return asdict(localize_configuration(await app.stats.get_configuration()))

    @router.put("/config/retention", response_model=ConfigurationResponse)
    async def save_retention_settings(request: RetentionSettingsRequest) -> dict:
        """Replace retention settings."""
        try:
            config = await app.stats.save_retention_settings(
                request.enable_data_prune,
                request.data_prune_interval_hours,
                request.max_log_age_hours,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return asdict(localize_configuration(config))

    @router.put("/config/capture", response_model=ConfigurationResponse)
    async def save_capture_settings(request: CaptureSettingsRequest) -> dict:
        """Replace capture switches."""
        config = await app.stats.save_capture_settings(
            request.capture_http_requests,
            request.capture_logger_messages,
        )
        return asdict(localize_configuration(config))

    @router.put("/config/ignore-paths", response_model=ConfigurationResponse)
    async def save_ignore_paths(request: IgnorePathsRequest) -> dict:
        """Replace the ignore-path list."""
        config = await app.stats.save_ignore_paths(request.ignore_paths)
        return asdict(localize_configuration(config))

    return router
