"""Pipeline module."""

from .middleware import HubbleMiddleware, resolve_route_labels
from .pipeline import (
    STATIC_FILE_EXTENSIONS,
    CapturedRequest,
    IRequestPipeline,
    RequestPipeline,
    ResponseCapture,
    normalize_client_address,
    serialize_headers,
)

__all__ = [
    "CapturedRequest",
    "HubbleMiddleware",
    "IRequestPipeline",
    "RequestPipeline",
    "ResponseCapture",
    "STATIC_FILE_EXTENSIONS",
    "normalize_client_address",
    "resolve_route_labels",
    "serialize_headers",
]
