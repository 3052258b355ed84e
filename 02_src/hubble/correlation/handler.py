"""Logging handler that forwards log records to the diagnostic recorder."""

import logging
from typing import Callable

from ..models import SystemConfiguration
from .recorder import IDiagnosticRecorder
from .registry import current_root_id

# Loggers whose records would feed back into capture
_IGNORED_LOGGERS = (
    "hubble",
    "aiosqlite",
    "sqlalchemy",
    "uvicorn.access",
    "httpx",
    "httpcore",
    "asyncio",
)

_exception_formatter = logging.Formatter()


def _is_ignored(name: str) -> bool:
    return any(name == prefix or name.startswith(prefix + ".") for prefix in _IGNORED_LOGGERS)


def _level_number(level_name: str) -> int:
    level = logging.getLevelName((level_name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class HubbleLogHandler(logging.Handler):
    """Captures application log records as Hubble diagnostic records."""

    def __init__(
        self,
        recorder: IDiagnosticRecorder,
        settings: Callable[[], SystemConfiguration],
    ):
        super().__init__(level=logging.NOTSET)
        self._recorder = recorder
        self._settings = settings
        self._target: logging.Logger | None = None
        self._saved_level: int | None = None
        self._saved_handler_levels: dict[logging.Handler, int] = {}

    def attach(self, target: logging.Logger) -> None:
        """Add this handler to target, lowering its level to the capture minimum.

        Handlers already on target are raised to the previous level so they
        keep receiving exactly what they received before.
        """
        minimum = _level_number(self._settings().minimum_log_level)
        previous = target.getEffectiveLevel()
        if previous > minimum:
            self._saved_level = target.level
            for handler in target.handlers:
                if handler.level < previous:
                    self._saved_handler_levels[handler] = handler.level
                    handler.setLevel(previous)
            target.setLevel(minimum)
        target.addHandler(self)
        self._target = target

    def detach(self) -> None:
        """Undo attach(), restoring every level it changed."""
        target = self._target
        if target is None:
            return
        target.removeHandler(self)
        if self._saved_level is not None:
            target.setLevel(self._saved_level)
        for handler, level in self._saved_handler_levels.items():
            handler.setLevel(level)
        self._target = None
        self._saved_level = None
        self._saved_handler_levels = {}

    def emit(self, record: logging.LogRecord) -> None:
        try:
            config = self._settings()
            if not config.capture_logger_messages:
                return
            if record.levelno < _level_number(config.minimum_log_level):
                return
            if _is_ignored(record.name):
                return

            message = (
                f"{record.getMessage()} "
                f"(File: {record.filename}, Line: {record.lineno}, Method: {record.funcName})"
            )
            stack_trace = None
            if record.exc_info:
                stack_trace = _exception_formatter.formatException(record.exc_info)

            self._recorder.submit(record.levelno, record.name, message, stack_trace)
        except Exception:
            self.handleError(record)


class RequestIdFilter(logging.Filter):
    """Stamps records with the root record id of the request in flight."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_root_id()
        return True
