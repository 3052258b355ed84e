"""Query capture module: ORM interception and the per-request query buffer."""

from .collector import IQueryCollector, PendingQuery, QueryCollector
from .interceptor import (
    QueryInterceptor,
    caller_scope,
    classify_operation,
    extract_table_name,
    resolve_caller,
)

__all__ = [
    "IQueryCollector",
    "PendingQuery",
    "QueryCollector",
    "QueryInterceptor",
    "caller_scope",
    "classify_operation",
    "extract_table_name",
    "resolve_caller",
]
