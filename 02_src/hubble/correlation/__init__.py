"""Correlation module: attaches diagnostic messages to the request in flight."""

from .handler import HubbleLogHandler, RequestIdFilter
from .recorder import DiagnosticRecorder, IDiagnosticRecorder, split_source_annotation
from .registry import (
    CorrelationRegistry,
    ICorrelationRegistry,
    RequestScope,
    current_root_id,
)

__all__ = [
    "CorrelationRegistry",
    "ICorrelationRegistry",
    "RequestScope",
    "current_root_id",
    "DiagnosticRecorder",
    "IDiagnosticRecorder",
    "HubbleLogHandler",
    "RequestIdFilter",
    "split_source_annotation",
]
