"""Retention pruner.

Deletes envelope records older than the configured maximum age, at most
once per configured interval and never twice at the same time. Checks are
triggered either after every captured request or by a periodic task.
"""

import asyncio
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Protocol

from ..logging_config import get_logger
from ..models import SystemConfiguration, utc_now
from ..stats import IStatsService
from ..storage import IStorage

logger = get_logger(__name__)

DEFAULT_MAX_AGE_HOURS = 24


class PruneInProgressError(RuntimeError):
    """A manual prune was refused because another pass is running."""


@dataclass
class PruneResult:
    """Outcome of one completed deletion pass."""

    started_at: datetime
    cutoff: datetime
    deleted_count: int


class PruneGate:
    """Single-flight and interval gate shared by every prune trigger.

    The lock only guards the two fields below; it is never held while
    talking to the store.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.last_attempt: datetime | None = None
        self.running = False

    def try_enter(
        self, now: datetime, interval_hours: int, force: bool = False
    ) -> bool:
        with self._lock:
            if self.running:
                return False
            if not force and self.last_attempt is not None:
                if now - self.last_attempt < timedelta(hours=interval_hours):
                    return False
            self.running = True
            self.last_attempt = now
            return True

    def leave(self) -> None:
        with self._lock:
            self.running = False


class IRetentionPruner(Protocol):
    """Gated deletion of expired records."""

    async def try_prune(self, now: datetime | None = None) -> PruneResult | None:
        """Run a pass if retention is enabled and the gate allows it."""
        ...

    async def prune_now(self) -> PruneResult | None:
        """Run a pass immediately, skipping the interval gate.

        Raises PruneInProgressError when another pass is running; returns
        None when the pass itself failed.
        """
        ...

    def signal(self) -> asyncio.Task | None:
        """Gate check that runs an admitted pass in the background."""
        ...


class RetentionPruner:
    """Deletes records past the configured age."""

    def __init__(
        self,
        storage: IStorage,
        stats: IStatsService,
        settings: Callable[[], SystemConfiguration],
        gate: PruneGate | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._storage = storage
        self._stats = stats
        self._settings = settings
        self._gate = gate or PruneGate()
        self._clock = clock
        self._background: set[asyncio.Task] = set()

    @property
    def gate(self) -> PruneGate:
        return self._gate

    async def try_prune(self, now: datetime | None = None) -> PruneResult | None:
        now = now or self._clock()
        if not self._admit(now, force=False):
            return None
        return await self._run(now)

    async def prune_now(self) -> PruneResult | None:
        """Manual run. Ignores the interval and the enabled flag, not single-flight."""
        now = self._clock()
        if not self._admit(now, force=True):
            raise PruneInProgressError("A prune is already running")
        return await self._run(now)

    def signal(self) -> asyncio.Task | None:
        now = self._clock()
        if not self._admit(now, force=False):
            return None

        task = asyncio.get_running_loop().create_task(self._run(now))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for passes started by signal()."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def run_periodically(self, poll_seconds: float | None = None) -> None:
        """Timer schedule: check the gate every interval until cancelled."""
        while True:
            try:
                await self.try_prune()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Scheduled prune error: {e}", exc_info=True)

            delay = poll_seconds
            if delay is None:
                delay = max(1, self._settings().data_prune_interval_hours) * 3600
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                break

    def _admit(self, now: datetime, force: bool) -> bool:
        config = self._settings()
        if not force and not config.enable_data_prune:
            return False
        return self._gate.try_enter(now, config.data_prune_interval_hours, force)

    async def _run(self, now: datetime) -> PruneResult | None:
        try:
            max_age = self._settings().max_log_age_hours
            if max_age <= 0:
                max_age = DEFAULT_MAX_AGE_HOURS
            cutoff = now - timedelta(hours=max_age)

            try:
                deleted = await self._storage.delete_logs_older_than(cutoff)
            except Exception:
                logger.exception("Prune failed")
                return None

            logger.info(
                "Pruned expired records",
                extra={"context": {"cutoff": cutoff.isoformat(), "deleted": deleted}},
            )

            try:
                await self._stats.update_prune_statistics(now, deleted)
            except Exception:
                logger.exception("Failed to record prune statistics")

            return PruneResult(started_at=now, cutoff=cutoff, deleted_count=deleted)
        finally:
            self._gate.leave()
