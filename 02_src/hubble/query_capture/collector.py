"""Per-request buffer of intercepted database commands.

The active buffer lives in a context variable, so it follows the request
through awaits and into worker threads started with a copied context.
"""

import time
from contextvars import ContextVar, Token
from threading import Lock
from typing import Protocol

from ..models import UNKNOWN, DatabaseQuery, OperationType, utc_now


class PendingQuery:
    """A database command that started executing during a request."""

    def __init__(
        self,
        database_type: str,
        database_name: str,
        query: str,
        parameters: str | None = None,
        operation_type: OperationType = OperationType.UNKNOWN,
        table_name: str = UNKNOWN,
        caller_method: str = UNKNOWN,
    ):
        self.database_type = database_type
        self.database_name = database_name
        self.query = query
        self.parameters = parameters
        self.operation_type = operation_type
        self.table_name = table_name
        self.caller_method = caller_method
        self.started_at = utc_now()
        self.is_success = True
        self.error_message: str | None = None
        self._start = time.perf_counter()
        self._elapsed_ms: int | None = None

    @property
    def finished(self) -> bool:
        return self._elapsed_ms is not None

    def finish(self, success: bool = True, error_message: str | None = None) -> None:
        """Stop the stopwatch. Only the first call counts."""
        if self._elapsed_ms is not None:
            return
        self._elapsed_ms = int((time.perf_counter() - self._start) * 1000)
        self.is_success = success
        self.error_message = error_message

    def to_database_query(self) -> DatabaseQuery:
        self.finish()
        return DatabaseQuery(
            database_type=self.database_type,
            database_name=self.database_name,
            query=self.query,
            parameters=self.parameters,
            operation_type=self.operation_type,
            table_name=self.table_name,
            caller_method=self.caller_method,
            execution_time=self._elapsed_ms or 0,
            timestamp=self.started_at,
            is_success=self.is_success,
            error_message=self.error_message,
        )


class QueryBuffer:
    """Ordered queries of one request. Frozen once drained."""

    def __init__(self):
        self._queries: list[PendingQuery] = []
        self._lock = Lock()
        self._drained = False

    def append(self, query: PendingQuery) -> bool:
        with self._lock:
            if self._drained:
                return False
            self._queries.append(query)
            return True

    def drain(self) -> list[DatabaseQuery]:
        with self._lock:
            self._drained = True
            queries, self._queries = self._queries, []
        return [q.to_database_query() for q in queries]

    def __len__(self) -> int:
        return len(self._queries)


_current_buffer: ContextVar[QueryBuffer | None] = ContextVar(
    "hubble_query_buffer", default=None
)


class IQueryCollector(Protocol):
    """Buffers database commands for the request in flight."""

    def begin(self) -> Token:
        """Open a buffer for the current request context."""
        ...

    def is_active(self) -> bool:
        """True when a request buffer is open in this context."""
        ...

    def add(self, query: PendingQuery) -> bool:
        """Append a query to the current buffer; False when none is open."""
        ...

    def drain(self) -> list[DatabaseQuery]:
        """Finalize and return the buffered queries, freezing the buffer."""
        ...

    def end(self, token: Token) -> None:
        """Close the buffer opened by begin()."""
        ...


class QueryCollector:
    """Context-scoped query buffer."""

    def begin(self) -> Token:
        return _current_buffer.set(QueryBuffer())

    def is_active(self) -> bool:
        return _current_buffer.get() is not None

    def add(self, query: PendingQuery) -> bool:
        buffer = _current_buffer.get()
        if buffer is None:
            return False
        return buffer.append(query)

    def drain(self) -> list[DatabaseQuery]:
        buffer = _current_buffer.get()
        if buffer is None:
            return []
        return buffer.drain()

    def end(self, token: Token) -> None:
        try:
            _current_buffer.reset(token)
        except ValueError:
            # Token created in another context; leave that context alone
            _current_buffer.set(None)
