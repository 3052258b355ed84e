"""Request envelope pipeline.

Each captured request produces exactly one root record. It is written
when the request starts (pre-image) so diagnostic messages emitted while
the handler runs can be correlated to it. It is updated once more when
the handler returns (post-image) or raises (error image).
"""

import dataclasses
import json
import time
import traceback
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Awaitable, Callable, Mapping, Protocol, TypeVar

from ..config import DEFAULT_REDACTED_HEADERS, HubbleOptions
from ..correlation import ICorrelationRegistry
from ..logging_config import get_logger
from ..models import UNKNOWN, DatabaseQuery, GeneralLog, SystemConfiguration, utc_now
from ..pruning import IRetentionPruner
from ..query_capture import IQueryCollector
from ..storage import IStorage

logger = get_logger(__name__)

T = TypeVar("T")

STATIC_FILE_EXTENSIONS = frozenset(
    {
        ".css",
        ".js",
        ".jpg",
        ".jpeg",
        ".png",
        ".gif",
        ".ico",
        ".svg",
        ".woff",
        ".woff2",
        ".ttf",
        ".eot",
    }
)
LOOPBACK_ADDRESSES = frozenset({"127.0.0.1", "::1", "localhost"})
LOCALHOST_LABEL = "Localhost"
NO_ADDRESS_LABEL = "IP not available"
REDACTED = "[REDACTED]"


@dataclass
class CapturedRequest:
    """Buffered view of an inbound request."""

    method: str
    path: str
    query_string: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_host: str | None = None


@dataclass
class ResponseCapture:
    """Response facts, filled in by the transport while the handler runs."""

    status_code: int | None = None
    body: bytes = b""
    controller_name: str = UNKNOWN
    action_name: str = UNKNOWN


def normalize_client_address(host: str | None) -> str:
    if not host:
        return NO_ADDRESS_LABEL
    if host in LOOPBACK_ADDRESSES:
        return LOCALHOST_LABEL
    return host


def serialize_headers(
    headers: Mapping[str, str], redacted: list[str] | None = None
) -> str:
    """JSON header map with sensitive values masked."""
    hidden = {h.lower() for h in (redacted or DEFAULT_REDACTED_HEADERS)}
    return json.dumps(
        {k: (REDACTED if k.lower() in hidden else v) for k, v in headers.items()}
    )


def decode_body(body: bytes | None) -> str:
    if not body:
        return ""
    return body.decode("utf-8", errors="replace")


def format_query_string(query_string: str) -> str:
    if not query_string:
        return ""
    return query_string if query_string.startswith("?") else f"?{query_string}"


class IRequestPipeline(Protocol):
    """Capture lifecycle around one inbound request."""

    def should_capture(self, path: str) -> bool:
        """False when the request bypasses capture entirely."""
        ...

    async def handle(
        self,
        request: CapturedRequest,
        downstream: Callable[[ResponseCapture], Awaitable[T]],
    ) -> T:
        """Run downstream inside a capture envelope and return its result."""
        ...


class RequestPipeline:
    """Orchestrates pre-image, query collection, post-image and prune signal."""

    def __init__(
        self,
        storage: IStorage,
        collector: IQueryCollector,
        registry: ICorrelationRegistry,
        settings: Callable[[], SystemConfiguration],
        pruner: IRetentionPruner | None = None,
        options: HubbleOptions | None = None,
    ):
        self._storage = storage
        self._collector = collector
        self._registry = registry
        self._settings = settings
        self._pruner = pruner
        self._options = options or HubbleOptions()

    def should_ignore(self, path: str) -> bool:
        config = self._settings()
        lowered = (path or "/").lower()

        for prefix in config.ignore_paths:
            if prefix and lowered.startswith(prefix.lower()):
                return True

        # Hubble's own pages and API
        for own in (self._options.base_path, self._options.api_prefix):
            if own and _under_path(lowered, own.lower()):
                return True

        if config.ignore_static_files:
            return PurePosixPath(lowered).suffix in STATIC_FILE_EXTENSIONS
        return False

    def should_capture(self, path: str) -> bool:
        return self._settings().capture_http_requests and not self.should_ignore(path)

    async def handle(
        self,
        request: CapturedRequest,
        downstream: Callable[[ResponseCapture], Awaitable[T]],
    ) -> T:
        capture = ResponseCapture()
        if not self.should_capture(request.path):
            return await downstream(capture)

        collector_token = self._collector.begin()
        registry_token = self._registry.open()
        try:
            root = await self._write_pre_image(request)

            start = time.perf_counter()
            try:
                result = await downstream(capture)
            except BaseException as exc:
                # A cancelled handler still gets an error image
                elapsed = _elapsed_ms(start)
                await self._finish(
                    request, root, capture, elapsed, error=exc, trace=traceback.format_exc()
                )
                raise

            await self._finish(request, root, capture, _elapsed_ms(start))
            return result
        finally:
            self._registry.close(registry_token)
            self._collector.end(collector_token)

    def build_pre_image(self, request: CapturedRequest) -> GeneralLog:
        return GeneralLog(
            timestamp=utc_now(),
            service_name=self._settings().service_name,
            method=request.method.upper(),
            http_url=request.path,
            query_params=format_query_string(request.query_string),
            request_headers=serialize_headers(
                request.headers, self._options.redacted_headers
            ),
            request_data=decode_body(request.body),
            ip_address=normalize_client_address(request.client_host),
        )

    async def _write_pre_image(self, request: CapturedRequest) -> GeneralLog:
        root = self.build_pre_image(request)
        try:
            log_id = await self._storage.create_log(root)
            self._registry.register(log_id, root)
        except Exception as e:
            root.id = None
            self._report("Failed to write request pre-image", e)
        return root

    async def _finish(
        self,
        request: CapturedRequest,
        root: GeneralLog,
        capture: ResponseCapture,
        elapsed: int,
        error: BaseException | None = None,
        trace: str | None = None,
    ) -> None:
        try:
            await self._registry.wait_pending()
            queries = self._collector.drain()
            final = self._build_final_image(root, capture, elapsed, queries, error, trace)

            if final.id:
                await self._storage.update_log(final)
            else:
                # Pre-image never reached the store; write the whole envelope once
                await self._storage.create_log(final)
        except Exception as e:
            self._report("Failed to write request envelope", e)

        self._signal_pruner()

    def _build_final_image(
        self,
        root: GeneralLog,
        capture: ResponseCapture,
        elapsed: int,
        queries: list[DatabaseQuery],
        error: BaseException | None,
        trace: str | None,
    ) -> GeneralLog:
        final = dataclasses.replace(
            root,
            execution_time=elapsed,
            controller_name=capture.controller_name or UNKNOWN,
            action_name=capture.action_name or UNKNOWN,
            database_queries=list(queries),
        )
        if error is None:
            final.status_code = capture.status_code or 200
            final.response_data = decode_body(capture.body)
        else:
            final.status_code = capture.status_code or 500
            final.is_error = True
            final.error_message = str(error) or type(error).__name__
            final.stack_trace = trace
        return final

    def _signal_pruner(self) -> None:
        if self._pruner is None:
            return
        try:
            self._pruner.signal()
        except Exception as e:
            self._report("Failed to signal retention pruner", e)

    def _report(self, message: str, error: Exception) -> None:
        if self._options.enable_diagnostics:
            logger.warning(f"{message}: {error}", exc_info=True)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _under_path(path: str, prefix: str) -> bool:
    """True when path is prefix itself or lies below it, by whole segments."""
    base = prefix.rstrip("/")
    if not base:
        return True
    return path == base or path.startswith(base + "/")
