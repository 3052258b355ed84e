"""Application bootstrap and lifecycle management."""

import asyncio
import logging
from typing import Any, Protocol

from .config import HubbleOptions, resolve_db_path
from .correlation import (
    CorrelationRegistry,
    DiagnosticRecorder,
    HubbleLogHandler,
    ICorrelationRegistry,
)
from .logging_config import get_logger
from .logs import ILogService, LogService
from .models import SystemConfiguration
from .pipeline import IRequestPipeline, RequestPipeline
from .pruning import RetentionPruner
from .query_capture import IQueryCollector, QueryCollector, QueryInterceptor
from .stats import StatsService
from .storage import IStorage, Storage

logger = get_logger(__name__)

PRUNE_SCHEDULE_TIMER = "timer"


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(self, options: HubbleOptions | None = None, db_path: str | None = None):
        self._options = options or HubbleOptions.from_env()
        env_db_path = self._options.database_url if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._stats: StatsService | None = None
        # Query capture has no dependencies; engines can be instrumented before start()
        self._collector: IQueryCollector = QueryCollector()
        self._interceptor = QueryInterceptor(self._collector)
        self._registry: ICorrelationRegistry | None = None
        self._recorder: DiagnosticRecorder | None = None
        self._log_handler: HubbleLogHandler | None = None
        self._pruner: RetentionPruner | None = None
        self._prune_task: asyncio.Task | None = None
        self._pipeline: IRequestPipeline | None = None
        self._logs: ILogService | None = None

    @property
    def options(self) -> HubbleOptions:
        return self._options

    @property
    def is_started(self) -> bool:
        return self._pipeline is not None

    def settings(self) -> SystemConfiguration:
        """Active configuration; read by every component on each use."""
        if not self._stats:
            raise RuntimeError("Application not started")
        return self._stats.current_configuration

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting Hubble")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. Stats + configuration record (depends on Storage)
        self._stats = StatsService(self._storage, self._options)
        config = await self._stats.get_configuration()
        logger.info(
            "Configuration loaded",
            extra={"context": {"service_name": config.service_name}},
        )

        # 3. Correlation (depends on Storage + configuration)
        self._registry = CorrelationRegistry()
        self._recorder = DiagnosticRecorder(
            self._storage,
            self._registry,
            self.settings,
            enable_diagnostics=self._options.enable_diagnostics,
        )
        self._recorder.bind_loop(asyncio.get_running_loop())
        self._log_handler = HubbleLogHandler(self._recorder, self.settings)
        self._log_handler.attach(logging.getLogger())

        # 4. Pruner (depends on Storage + Stats)
        self._pruner = RetentionPruner(self._storage, self._stats, self.settings)
        timer_schedule = self._options.prune_schedule == PRUNE_SCHEDULE_TIMER
        if timer_schedule:
            self._prune_task = asyncio.create_task(self._pruner.run_periodically())
            logger.info("Retention pruner scheduled on timer")

        # 5. Pipeline (depends on everything above)
        self._pipeline = RequestPipeline(
            self._storage,
            self._collector,
            self._registry,
            self.settings,
            pruner=None if timer_schedule else self._pruner,
            options=self._options,
        )
        self._logs = LogService(self._storage, self.settings)
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        self._pipeline = None
        if self._prune_task:
            self._prune_task.cancel()
            try:
                await self._prune_task
            except asyncio.CancelledError:
                pass
            self._prune_task = None
        if self._pruner:
            await self._pruner.wait_idle()
        if self._log_handler:
            self._log_handler.detach()
            self._log_handler = None
        if self._recorder:
            await self._recorder.flush()
        self._interceptor.uninstall()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        if self._recorder:
            await self._recorder.flush()
        if self._pruner:
            await self._pruner.wait_idle()

        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")

        if self._stats:
            await self._stats.reload_configuration()
            logger.info("Reset complete")

    def instrument(self, engine: Any) -> None:
        """Capture database commands issued through a sqlalchemy engine.

        Engines are detached again by stop().
        """
        self._interceptor.install(engine)

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def stats(self) -> StatsService:
        """Get stats service instance."""
        if not self._stats:
            raise RuntimeError("Application not started")
        return self._stats

    @property
    def interceptor(self) -> QueryInterceptor:
        """Get query interceptor instance."""
        return self._interceptor

    @property
    def registry(self) -> ICorrelationRegistry:
        """Get correlation registry instance."""
        if not self._registry:
            raise RuntimeError("Application not started")
        return self._registry

    @property
    def recorder(self) -> DiagnosticRecorder:
        """Get diagnostic recorder instance."""
        if not self._recorder:
            raise RuntimeError("Application not started")
        return self._recorder

    @property
    def pruner(self) -> RetentionPruner:
        """Get retention pruner instance."""
        if not self._pruner:
            raise RuntimeError("Application not started")
        return self._pruner

    @property
    def pipeline(self) -> IRequestPipeline:
        """Get request pipeline instance."""
        if not self._pipeline:
            raise RuntimeError("Application not started")
        return self._pipeline

    @property
    def logs(self) -> ILogService:
        """Get log service instance."""
        if not self._logs:
            raise RuntimeError("Application not started")
        return self._logs
