"""Log listing and lookup API routes."""

from dataclasses import asdict
from datetime import datetime

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import Application
from ...models import GeneralLog, LogFilter


class DatabaseQueryResponse(BaseModel):
    """Response model for a captured database command."""

    database_type: str
    database_name: str
    query: str
    parameters: str | None = None
    operation_type: str
    table_name: str
    caller_method: str
    execution_time: int
    timestamp: datetime
    is_success: bool
    error_message: str | None = None


class LogResponse(BaseModel):
    """Response model for an envelope record."""

    id: str | None
    timestamp: datetime
    service_name: str
    method: str
    http_url: str
    query_params: str
    request_headers: str | None = None
    request_data: str | None = None
    response_data: str | None = None
    status_code: int
    controller_name: str
    action_name: str
    ip_address: str
    execution_time: int
    is_error: bool
    error_message: str | None = None
    stack_trace: str | None = None
    source_location: str | None = None
    database_queries: list[DatabaseQueryResponse]
    related_request_id: str | None = None


class LogPageResponse(BaseModel):
    """Response model for a page of records."""

    logs: list[LogResponse]
    page: int
    page_size: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class LogDetailResponse(BaseModel):
    """Response model for a record with its correlated children."""

    log: LogResponse
    related_logs: list[LogResponse]


class DeleteResponse(BaseModel):
    """Response model for bulk deletion."""

    deleted: int


def _log_to_dict(log: GeneralLog) -> dict:
    data = asdict(log)
    for query in data["database_queries"]:
        query["operation_type"] = query["operation_type"].value
    return data


def create_logs_router(app: Application) -> APIRouter:
    """Create log listing router."""
    router = APIRouter(prefix=app.options.api_prefix, tags=["hubble-logs"])

    @router.get("/logs", response_model=LogPageResponse)
    async def list_logs(
        method: str | None = Query(None, description="Exact HTTP method"),
        url: str | None = Query(None, description="Words matched against path and query"),
        status_group: str | None = Query(None, description="100, 200, 300, 400 or 500"),
        log_type: str | None = Query(None, description="HTTP or ApplicationLogger"),
        exclude_related: bool | None = Query(None),
        page: str | None = Query(None),
        page_size: str | None = Query(None),
    ) -> dict:
        """List records, newest first. Malformed paging input falls back to defaults."""
        log_filter = LogFilter.from_params(
            method=method,
            url=url,
            status_group=status_group,
            log_type=log_type,
            page=page,
            page_size=page_size,
            exclude_related=exclude_related,
        )
        result = await app.logs.list_logs(log_filter)
        return {
            "logs": [_log_to_dict(log) for log in result.logs],
            "page": result.page,
            "page_size": result.page_size,
            "total_count": result.total_count,
            "total_pages": result.total_pages,
            "has_next_page": result.has_next_page,
            "has_previous_page": result.has_previous_page,
        }

    @router.get("/logs/{log_id}", response_model=LogDetailResponse)
    async def get_log(log_id: str) -> dict:
        """Get one record and the diagnostic records correlated to it."""
        found = await app.logs.get_log(log_id)
        if found is None:
            raise HTTPException(status_code=404, detail=f"Log {log_id} not found")

        log, related = found
        return {
            "log": _log_to_dict(log),
            "related_logs": [_log_to_dict(r) for r in related],
        }

    @router.delete("/logs", response_model=DeleteResponse)
    async def delete_all_logs() -> dict:
        """Delete every record."""
        deleted = await app.logs.delete_all_logs()
        return {"deleted": deleted}

    return router
