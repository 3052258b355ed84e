"""Hubble: request capture, correlation and retention for FastAPI services."""

from .app import Application, IApplication
from .config import HubbleOptions
from .correlation import (
    CorrelationRegistry,
    DiagnosticRecorder,
    HubbleLogHandler,
    ICorrelationRegistry,
    IDiagnosticRecorder,
)
from .logs import ILogService, LogService
from .models import (
    DatabaseQuery,
    GeneralLog,
    HubbleStatistics,
    LogFilter,
    LogPage,
    OperationType,
    PruneStatistics,
    SystemConfiguration,
    SystemInfo,
)
from .pipeline import HubbleMiddleware, IRequestPipeline, RequestPipeline
from .pruning import IRetentionPruner, PruneGate, RetentionPruner
from .query_capture import IQueryCollector, QueryCollector, QueryInterceptor, caller_scope
from .stats import IStatsService, StatsService
from .storage import IStorage, Storage
from .api import create_fastapi_app, install_hubble

__all__ = [
    # Application
    "Application",
    "IApplication",
    "HubbleOptions",
    "create_fastapi_app",
    "install_hubble",
    # Models
    "GeneralLog",
    "DatabaseQuery",
    "OperationType",
    "HubbleStatistics",
    "PruneStatistics",
    "SystemConfiguration",
    "SystemInfo",
    "LogFilter",
    "LogPage",
    # Components
    "IStorage",
    "Storage",
    "IQueryCollector",
    "QueryCollector",
    "QueryInterceptor",
    "caller_scope",
    "ICorrelationRegistry",
    "CorrelationRegistry",
    "IDiagnosticRecorder",
    "DiagnosticRecorder",
    "HubbleLogHandler",
    "IRequestPipeline",
    "RequestPipeline",
    "HubbleMiddleware",
    "IRetentionPruner",
    "PruneGate",
    "RetentionPruner",
    "IStatsService",
    "StatsService",
    "ILogService",
    "LogService",
]
