"""
TARS - Observability Middleware

Request middleware that combines metrics and structured logging:
- Correlation ID per request (``X-Request-Id`` honoured or generated)
- Log context injection so every log line inside the request carries it
- Prometheus request counters and latency histograms

Usage:
    from tars.observability.middleware import ObservabilityMiddleware

    app.add_middleware(ObservabilityMiddleware)
"""

import time
import uuid
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from .metrics import MetricsCollector, get_metrics
from .logging import LogContext, get_logger


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Unified observability middleware.

    The collector is taken from ``app.state.metrics`` when the app provides
    one, otherwise the process-wide collector is used.
    """

    # Paths to exclude from request logging
    EXCLUDE_PATHS = {"/metrics", "/openapi.json", "/docs", "/redoc"}

    def __init__(
        self,
        app: ASGIApp,
        exclude_paths: Optional[set] = None,
    ):
        super().__init__(app)
        self.exclude_paths = exclude_paths or self.EXCLUDE_PATHS
        self.logger = get_logger("tars.observability.middleware")

    def _metrics(self, request: Request) -> MetricsCollector:
        return getattr(request.app.state, "metrics", None) or get_metrics()

    def _endpoint_label(self, request: Request) -> str:
        """Route template for metrics labels; unmatched paths share one label."""
        route = request.scope.get("route")
        return getattr(route, "path", None) or "unmatched"

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request with logging context and metrics."""
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        metrics = self._metrics(request)

        request_id = request.headers.get("x-request-id", "")
        if not request_id:
            request_id = f"req_{uuid.uuid4().hex[:24]}"

        token = LogContext.set_current(
            LogContext(request_id=request_id, operation=f"{request.method} {request.url.path}")
        )
        request.state.request_id = request_id
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            duration_seconds = time.perf_counter() - start_time
            metrics.record_request(self._endpoint_label(request), request.method, 500, duration_seconds)
            self.logger.exception(
                "Request failed with exception",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration_seconds * 1000, 2),
            )
            raise
        else:
            duration_seconds = time.perf_counter() - start_time
            metrics.record_request(self._endpoint_label(request), request.method, response.status_code, duration_seconds)
            self._log_request(request, response, duration_seconds * 1000)

            response.headers["X-Request-Id"] = request_id
            return response
        finally:
            LogContext.reset(token)

    def _log_request(self, request: Request, response: Response, duration_ms: float):
        """Log request completion."""
        status_code = response.status_code

        log_data = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
            "client_ip": request.client.host if request.client else None,
        }

        if status_code >= 500:
            self.logger.error("Request completed with server error", **log_data)
        elif status_code >= 400:
            self.logger.warning("Request completed with client error", **log_data)
        else:
            self.logger.info("Request completed", **log_data)
