"""HTTP request logging and metrics middleware."""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from leadgen_service.api.envelope import unhandled_exception_handler
from leadgen_service.metrics import MetricsRegistry

logger = structlog.get_logger()

REQUEST_ID_HEADER = "x-request-id"


def route_label(request: Request) -> str:
    """Metrics label from the matched route template, not the raw path."""
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return f"{request.method} {template or 'unmatched'}"


def _as_text(value: object) -> str | None:
    return None if value is None else str(value)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log one line when it completes.

    Unhandled errors become the generic 500 envelope here, so every
    response carries ``x-request-id``. The completion hook runs on every
    exit path, cancelled requests included, and also feeds the metrics
    registry.
    """

    def __init__(self, app: ASGIApp, metrics: MetricsRegistry) -> None:
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request and log timing information."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        status_code = 500
        try:
            with structlog.contextvars.bound_contextvars(request_id=request_id):
                try:
                    response = await call_next(request)
                except Exception as exc:
                    response = await unhandled_exception_handler(request, exc)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            self._complete(request, request_id, status_code, start)

    def _complete(
        self, request: Request, request_id: str, status_code: int, start: float
    ) -> None:
        latency_ms = int((time.perf_counter() - start) * 1000)
        state = request.state
        tenant_id = getattr(state, "tenant_id", None) or request.headers.get(
            "x-tenant-id"
        )

        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=status_code,
            tenant_id=str(tenant_id) if tenant_id else None,
            request_id=request_id,
            car_id=_as_text(getattr(state, "car_id", None)),
            driver_id=_as_text(getattr(state, "driver_id", None)),
            latency_ms=latency_ms,
            outcome="success" if status_code < 400 else "error",
        )
        self.metrics.record(route_label(request), latency_ms, status_code)
