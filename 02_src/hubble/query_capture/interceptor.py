"""Interceptor bridge between ORM command hooks and the query collector.

Usage:
    interceptor = QueryInterceptor(collector, database_name="orders")
    interceptor.install(engine)  # sqlalchemy Engine or AsyncEngine

    # Optional explicit caller label for the queries run inside the block
    with caller_scope("OrderRepository.list_open"):
        session.execute(select(Order))
"""

import json
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

from sqlalchemy import event

from ..logging_config import get_logger
from ..models import UNKNOWN, OperationType
from .collector import IQueryCollector, PendingQuery

logger = get_logger(__name__)

# Checked in order; longer keywords sharing a prefix are covered by "EXEC"
_KEYWORD_OPERATIONS = (
    ("INSERT", OperationType.INSERT),
    ("UPDATE", OperationType.UPDATE),
    ("DELETE", OperationType.DELETE),
    ("CREATE", OperationType.CREATE),
    ("ALTER", OperationType.ALTER),
    ("DROP", OperationType.DROP),
    ("TRUNCATE", OperationType.TRUNCATE),
    ("EXEC", OperationType.EXECUTE),
    ("CALL", OperationType.EXECUTE),
    ("SP_", OperationType.EXECUTE),
    ("[SP_", OperationType.EXECUTE),
)
_READ_PREFIXES = ("SELECT", "WITH")
_PROCEDURE_KEYWORDS = {"EXEC", "EXECUTE", "CALL"}
_NAME_TRIM = "[]`\"'();,"

# Frames from these modules are never reported as the caller
_FRAMEWORK_MODULES = (
    "hubble",
    "sqlalchemy",
    "aiosqlite",
    "asyncio",
    "anyio",
    "starlette",
    "fastapi",
    "concurrent",
    "threading",
    "contextlib",
    "logging",
)

_PENDING_KEY = "hubble_pending_queries"

_caller_label: ContextVar[str | None] = ContextVar("hubble_caller_label", default=None)


@contextmanager
def caller_scope(label: str) -> Iterator[None]:
    """Label every query captured inside the block with an explicit caller."""
    token = _caller_label.set(label)
    try:
        yield
    finally:
        _caller_label.reset(token)


def classify_operation(command_text: str, read: bool = False) -> OperationType:
    """Classify a command by its leading keyword.

    Commands that match no keyword are SELECT when they arrived through a
    read pathway and UNKNOWN otherwise.
    """
    try:
        text = (command_text or "").lstrip().upper()
        if not text:
            return OperationType.UNKNOWN
        for keyword, operation in _KEYWORD_OPERATIONS:
            if text.startswith(keyword):
                return operation
        return OperationType.SELECT if read else OperationType.UNKNOWN
    except Exception:
        return OperationType.UNKNOWN


def _clean_name(token: str) -> str:
    name = token.split("(", 1)[0].strip(_NAME_TRIM)
    return name or UNKNOWN


def _word_after(words: list[str], keyword: str) -> str:
    for i in range(len(words) - 1):
        if words[i].upper() == keyword:
            return _clean_name(words[i + 1])
    return UNKNOWN


def extract_table_name(command_text: str, operation: OperationType) -> str:
    """Best-effort table (or procedure) name. Never raises."""
    try:
        words = (command_text or "").split()
        if not words:
            return UNKNOWN

        if operation in (OperationType.SELECT, OperationType.DELETE):
            return _word_after(words, "FROM")
        if operation == OperationType.INSERT:
            return _word_after(words, "INTO")
        if operation == OperationType.UPDATE:
            return _clean_name(words[1]) if len(words) > 1 else UNKNOWN
        if operation == OperationType.EXECUTE:
            first = words[0].upper()
            if first in _PROCEDURE_KEYWORDS:
                if len(words) < 2:
                    return UNKNOWN
                target = words[1]
            else:
                target = words[0]
            # dbo.[sp_name] -> sp_name
            return _clean_name(target.split("(", 1)[0].split(".")[-1])
    except Exception:
        pass
    return UNKNOWN


def _is_framework_module(module: str) -> bool:
    root = module.split(".", 1)[0]
    return root in _FRAMEWORK_MODULES


def resolve_caller() -> str:
    """Label of the application code that issued the current command.

    An explicit caller_scope() label wins; otherwise the stack is walked
    outward to the first frame outside Hubble, the ORM and the runtime.
    """
    label = _caller_label.get()
    if label:
        return label

    try:
        frame = sys._getframe(1)
        while frame is not None:
            module = frame.f_globals.get("__name__", "")
            if module and not _is_framework_module(module):
                code = frame.f_code
                qualname = getattr(code, "co_qualname", code.co_name)
                qualname = qualname.replace("<locals>.", "")
                if "." in qualname:
                    return qualname
                return f"{module.rsplit('.', 1)[-1]}.{qualname}"
            frame = frame.f_back
    except Exception:
        pass
    return UNKNOWN


def serialize_parameters(parameters: Any) -> str | None:
    if parameters is None:
        return None
    try:
        if isinstance(parameters, (list, tuple)) and not parameters:
            return None
        return json.dumps(parameters, default=str)
    except Exception:
        return str(parameters)


def _connection_kind(connection: Any) -> str:
    if connection is None:
        return UNKNOWN
    dialect = getattr(connection, "dialect", None)
    name = getattr(dialect, "name", None)
    return name or type(connection).__name__


def _is_read_pathway(context: Any, statement: str, executemany: bool) -> bool:
    if executemany:
        return False
    compiled = getattr(context, "compiled", None)
    compiled_statement = getattr(compiled, "statement", None)
    if getattr(compiled_statement, "is_select", False):
        return True
    return statement.lstrip().upper().startswith(_READ_PREFIXES)


class QueryInterceptor:
    """Hook invoked by the data layer right before a command executes."""

    def __init__(self, collector: IQueryCollector, database_name: str = ""):
        self._collector = collector
        self._database_name = database_name
        self._engines: list[Any] = []

    def capture(
        self,
        command_text: str,
        parameters: Any = None,
        connection: Any = None,
        *,
        read: bool = False,
        database_type: str | None = None,
        database_name: str | None = None,
    ) -> PendingQuery | None:
        """Record a command about to execute. No-op outside a tracked request."""
        if not self._collector.is_active():
            return None

        try:
            operation = classify_operation(command_text, read)
            pending = PendingQuery(
                database_type=database_type or _connection_kind(connection),
                database_name=database_name or self._database_name or UNKNOWN,
                query=command_text,
                parameters=serialize_parameters(parameters),
                operation_type=operation,
                table_name=extract_table_name(command_text, operation),
                caller_method=resolve_caller(),
            )
        except Exception:
            logger.debug("Query capture failed", exc_info=True)
            return None

        if not self._collector.add(pending):
            return None
        return pending

    # SQLAlchemy integration
    def install(self, engine: Any) -> None:
        """Attach to a sqlalchemy Engine (or the sync engine of an AsyncEngine)."""
        target = getattr(engine, "sync_engine", engine)
        event.listen(target, "before_cursor_execute", self._before_cursor_execute)
        event.listen(target, "after_cursor_execute", self._after_cursor_execute)
        event.listen(target, "handle_error", self._handle_error)
        self._engines.append(target)

    def uninstall(self) -> None:
        """Detach from every engine this interceptor was installed on."""
        for target in self._engines:
            event.remove(target, "before_cursor_execute", self._before_cursor_execute)
            event.remove(target, "after_cursor_execute", self._after_cursor_execute)
            event.remove(target, "handle_error", self._handle_error)
        self._engines = []

    def _before_cursor_execute(
        self, conn, cursor, statement, parameters, context, executemany
    ) -> None:
        pending = None
        try:
            url_database = getattr(getattr(conn, "engine", None), "url", None)
            pending = self.capture(
                statement,
                parameters,
                conn,
                read=_is_read_pathway(context, statement, executemany),
                database_name=self._database_name
                or getattr(url_database, "database", None)
                or None,
            )
        except Exception:
            logger.debug("Query capture failed", exc_info=True)
        # Keep push/pop balanced even when nothing was captured
        conn.info.setdefault(_PENDING_KEY, []).append(pending)

    def _after_cursor_execute(
        self, conn, cursor, statement, parameters, context, executemany
    ) -> None:
        stack = conn.info.get(_PENDING_KEY)
        if not stack:
            return
        pending = stack.pop()
        if pending is not None:
            pending.finish(success=True)

    def _handle_error(self, exception_context) -> None:
        conn = exception_context.connection
        if conn is None:
            return
        stack = conn.info.get(_PENDING_KEY)
        if not stack:
            return
        pending = stack[-1]
        statement = exception_context.statement
        if pending is not None and pending.query != statement:
            return
        stack.pop()
        if pending is not None:
            pending.finish(
                success=False,
                error_message=str(exception_context.original_exception),
            )
