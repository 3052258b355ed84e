"""Envelope and database-query data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

# Classification label of diagnostic (logger) records
DIAGNOSTIC_LABEL = "ApplicationLogger"
# Method value carried by diagnostic records
DIAGNOSTIC_METHOD = "LOGGER"
UNKNOWN = "Unknown"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class OperationType(str, Enum):
    """Kind of an intercepted database command."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CREATE = "CREATE"
    ALTER = "ALTER"
    DROP = "DROP"
    TRUNCATE = "TRUNCATE"
    EXECUTE = "EXECUTE"
    UNKNOWN = "UNKNOWN"


@dataclass
class DatabaseQuery:
    """A database command captured while handling a request."""

    database_type: str
    database_name: str
    query: str
    parameters: str | None = None  # JSON-serialized parameter map
    operation_type: OperationType = OperationType.UNKNOWN
    table_name: str = UNKNOWN
    caller_method: str = UNKNOWN
    execution_time: int = 0  # milliseconds
    timestamp: datetime = field(default_factory=utc_now)
    is_success: bool = True
    error_message: str | None = None


@dataclass
class GeneralLog:
    """Envelope record: one captured request, or one diagnostic message.

    A record with ``related_request_id`` set is a child of the root with
    that id and is written once. Roots are written at request start and
    updated once more at request end.
    """

    timestamp: datetime = field(default_factory=utc_now)
    id: str | None = None
    service_name: str = ""
    method: str = ""
    http_url: str = ""
    query_params: str = ""
    request_headers: str | None = None
    request_data: str | None = None
    response_data: str | None = None
    status_code: int = 0
    controller_name: str = ""
    action_name: str = ""
    ip_address: str = ""
    execution_time: int = 0  # milliseconds
    is_error: bool = False
    error_message: str | None = None
    stack_trace: str | None = None
    source_location: str | None = None
    database_queries: list[DatabaseQuery] = field(default_factory=list)
    related_request_id: str | None = None

    @property
    def is_child(self) -> bool:
        """True when this record is correlated to a root request."""
        return self.related_request_id is not None

    @property
    def is_diagnostic(self) -> bool:
        """True for records produced from logger messages."""
        return self.controller_name == DIAGNOSTIC_LABEL
