"""ASGI middleware that runs inbound HTTP requests through the pipeline."""

from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..logging_config import get_logger
from ..models import UNKNOWN
from .pipeline import CapturedRequest, IRequestPipeline, ResponseCapture

logger = get_logger(__name__)


def resolve_route_labels(scope: dict[str, Any]) -> tuple[str, str]:
    """Controller and action labels of the endpoint that served the request.

    Only available after dispatch, once the router has matched a route.
    """
    endpoint = scope.get("endpoint")
    if endpoint is None:
        return UNKNOWN, UNKNOWN

    action = getattr(endpoint, "__name__", None) or UNKNOWN

    # Functions defined inside factories: keep the part after "<locals>."
    qualname = getattr(endpoint, "__qualname__", "").rsplit("<locals>.", 1)[-1]
    if "." in qualname:
        return qualname.rsplit(".", 2)[-2], action

    tags = getattr(scope.get("route"), "tags", None)
    if tags:
        return str(tags[0]), action

    module = getattr(endpoint, "__module__", None)
    if module:
        return module.rsplit(".", 1)[-1], action
    return UNKNOWN, action


def _as_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


class HubbleMiddleware(BaseHTTPMiddleware):
    """Captures request/response envelopes without altering what is sent."""

    def __init__(
        self,
        app: ASGIApp,
        get_pipeline: Callable[[], IRequestPipeline | None],
    ):
        super().__init__(app)
        self._get_pipeline = get_pipeline

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        pipeline = self._get_pipeline()
        if pipeline is None or not pipeline.should_capture(request.url.path):
            return await call_next(request)

        # Starlette replays a body read here to the downstream app
        try:
            body = await request.body()
        except Exception:
            logger.debug("Request body not readable; capturing without it")
            body = b""

        captured = CapturedRequest(
            method=request.method,
            path=request.url.path,
            query_string=request.url.query,
            headers=dict(request.headers),
            body=body,
            client_host=request.client.host if request.client else None,
        )

        async def downstream(capture: ResponseCapture) -> Response:
            response = await call_next(request)
            capture.status_code = response.status_code
            capture.controller_name, capture.action_name = resolve_route_labels(
                request.scope
            )

            chunks = [_as_bytes(chunk) async for chunk in response.body_iterator]
            capture.body = b"".join(chunks)

            # Same bytes, status and headers as the original response
            echoed = Response(
                content=capture.body,
                status_code=response.status_code,
                background=getattr(response, "background", None),
            )
            echoed.raw_headers = list(response.raw_headers)
            return echoed

        return await pipeline.handle(captured, downstream)
