"""Recorder that turns diagnostic messages into envelope records."""

import asyncio
import logging
import re
from typing import Callable, Protocol

from ..logging_config import get_logger
from ..models import (
    DIAGNOSTIC_LABEL,
    DIAGNOSTIC_METHOD,
    GeneralLog,
    SystemConfiguration,
    utc_now,
)
from ..storage import IStorage
from .registry import ICorrelationRegistry, PendingWrite

logger = get_logger(__name__)

# "... (File: orders.py, Line: 12, Method: create)" or "... (Method: create)"
_SOURCE_ANNOTATION = re.compile(r"\s*\((?P<source>(?:File|Method): [^()]*)\)\s*$")


def split_source_annotation(message: str) -> tuple[str, str | None]:
    """Separate a trailing source-location annotation from a message."""
    match = _SOURCE_ANNOTATION.search(message)
    if not match:
        return message, None
    return message[: match.start()], match.group("source")


class IDiagnosticRecorder(Protocol):
    """Persists diagnostic messages, correlated to the request in flight."""

    async def record(
        self,
        level: int,
        category: str,
        message: str,
        stack_trace: str | None = None,
    ) -> GeneralLog | None:
        """Create and persist a child (or standalone) record."""
        ...

    def submit(
        self,
        level: int,
        category: str,
        message: str,
        stack_trace: str | None = None,
    ) -> bool:
        """Schedule record() from synchronous code."""
        ...


class DiagnosticRecorder:
    """Creates child records via the registry and direct record() calls."""

    def __init__(
        self,
        storage: IStorage,
        registry: ICorrelationRegistry,
        settings: Callable[[], SystemConfiguration],
        enable_diagnostics: bool = False,
    ):
        self._storage = storage
        self._registry = registry
        self._settings = settings
        self._enable_diagnostics = enable_diagnostics
        self._loop: asyncio.AbstractEventLoop | None = None
        self._background: set[PendingWrite] = set()

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Event loop that owns the storage connection."""
        self._loop = loop

    def build_record(
        self,
        level: int,
        category: str,
        message: str,
        stack_trace: str | None = None,
        root: GeneralLog | None = None,
    ) -> GeneralLog:
        text, source = split_source_annotation(message)
        is_error = level >= logging.ERROR

        log = GeneralLog(
            timestamp=utc_now(),
            service_name=self._settings().service_name,
            method=DIAGNOSTIC_METHOD,
            http_url=category,
            controller_name=DIAGNOSTIC_LABEL,
            action_name=logging.getLevelName(level),
            request_data=text,
            source_location=source,
            is_error=is_error,
            error_message=text if is_error else None,
            stack_trace=stack_trace if is_error else None,
        )
        if root is not None:
            log.related_request_id = root.id
            log.ip_address = root.ip_address
        return log

    async def record(
        self,
        level: int,
        category: str,
        message: str,
        stack_trace: str | None = None,
    ) -> GeneralLog | None:
        root = self._registry.current()
        log = self.build_record(level, category, message, stack_trace, root)
        return await self._persist(log)

    def submit(
        self,
        level: int,
        category: str,
        message: str,
        stack_trace: str | None = None,
    ) -> bool:
        loop = self._loop
        if loop is None or loop.is_closed():
            return False

        # Resolve the root now, in the emitting context
        root = self._registry.current()
        log = self.build_record(level, category, message, stack_trace, root)

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        write: PendingWrite
        if running is loop:
            write = loop.create_task(self._persist(log))
        else:
            write = asyncio.run_coroutine_threadsafe(self._persist(log), loop)

        self._background.add(write)
        write.add_done_callback(self._background.discard)
        if root is not None:
            self._registry.track(write)
        return True

    async def flush(self) -> None:
        """Wait for every scheduled write, correlated or not."""
        writes = list(self._background)
        if not writes:
            return
        await asyncio.gather(
            *[
                w if isinstance(w, asyncio.Future) else asyncio.wrap_future(w)
                for w in writes
            ],
            return_exceptions=True,
        )

    async def _persist(self, log: GeneralLog) -> GeneralLog | None:
        try:
            await self._storage.create_log(log)
        except Exception as e:
            if self._enable_diagnostics:
                logger.warning("Failed to persist diagnostic record: %s", e)
            return None
        return log
