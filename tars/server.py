"""
TARS - API Server

FastAPI surface over the client facade for the desktop UI and scripts.

Endpoints:
- GET  /api/health           Liveness plus provider snapshot
- GET  /api/providers        Provider health snapshot
- POST /api/test-connection  One lightweight call through the chain
- POST /api/analyze          Content analysis
- POST /api/generate         Outreach generation (query letters, social posts)
- POST /api/format           Manuscript formatting
- GET  /metrics              Prometheus metrics
- WS   /ws                   Realtime status and analysis channel

Provider failures are in-band: these endpoints answer 200 with
``error: true``. Only malformed requests (400), rate limiting (429) and
startup problems surface as HTTP errors.
"""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager, suppress
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .client import TarsClient
from .config import Settings, load_settings
from .core.errors import ClientRateLimitedError, InvalidRequestError, TarsException
from .core.models import CallOptions, HealthStatus
from .limits import DEFAULT_REQUESTS_PER_MINUTE, RequestRateLimiter
from .observability.logging import get_logger, setup_logging
from .observability.metrics import MetricsCollector, get_metrics, metrics_endpoint
from .observability.middleware import ObservabilityMiddleware
from .realtime import RealtimeHub


logger = get_logger("tars.server")


# ============================================================
# Request models
# ============================================================

class AnalyzeRequest(BaseModel):
    content: str
    analysisType: str = "general"
    options: Optional[Dict[str, Any]] = None


class GenerateRequest(BaseModel):
    type: str
    context: Dict[str, Any] = Field(default_factory=dict)
    options: Optional[Dict[str, Any]] = None


class FormatRequest(BaseModel):
    content: str
    formatType: str = "reedsy"
    options: Optional[Dict[str, Any]] = None


async def _self_test(client: TarsClient):
    result = await client.test_connection()
    logger.info(
        "Provider self-test result",
        success=result["success"],
        provider=result["provider"],
        detail=result["message"],
    )


def _require_text(value: str, param: str, message: str):
    if not value or not value.strip():
        raise InvalidRequestError(message, param=param)


def _call_options(raw: Optional[Dict[str, Any]]) -> Optional[CallOptions]:
    if raw is None:
        return None
    try:
        return CallOptions.from_dict(raw)
    except ValueError as e:
        raise InvalidRequestError(str(e), param="options")


async def enforce_rate_limit(request: Request):
    """Per-client request limit for the /api routes."""
    limiter: RequestRateLimiter = request.app.state.rate_limiter
    client_ip = request.client.host if request.client else "unknown"

    result = await limiter.hit(client_ip)
    if not result.allowed:
        logger.warning("Rate limit exceeded", client_ip=client_ip, limit=result.limit)
        raise ClientRateLimitedError(
            result.limit,
            retry_after=result.retry_after or 60,
            request_id=getattr(request.state, "request_id", ""),
        )


# ============================================================
# App factory
# ============================================================

def create_app(
    client: Optional[TarsClient] = None,
    settings: Optional[Settings] = None,
    metrics: Optional[MetricsCollector] = None,
    rate_limiter: Optional[RequestRateLimiter] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        client: Pre-built client; when omitted one is built from settings
            at startup and given a connection self-test
        settings: Settings to build the client from; loaded from disk if
            omitted
        metrics: Collector exposed on /metrics and used by the middleware
        rate_limiter: Per-client limiter; defaults to the settings'
            ``api.rateLimitPerMinute``
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan - startup and shutdown."""
        owns_client = app.state.client is None

        if owns_client:
            app_settings = settings or load_settings()
            setup_logging(level=app_settings.log_level)
            if rate_limiter is None:
                app.state.rate_limiter.requests_per_minute = app_settings.rate_limit_per_minute
            app.state.client = TarsClient.from_settings(app_settings, metrics=app.state.metrics)

        tars_client: TarsClient = app.state.client
        tars_client.start()
        app.state.started_at = time.time()

        logger.info(
            "TARS server ready",
            version=__version__,
            providers=tars_client.registry.keys(),
        )

        self_test = asyncio.create_task(_self_test(tars_client)) if owns_client else None

        yield

        if self_test is not None:
            self_test.cancel()
            with suppress(asyncio.CancelledError):
                await self_test
        await tars_client.aclose()
        logger.info("TARS server stopped")

    app = FastAPI(
        title="TARS PC Agent",
        description="Multi-provider AI call orchestration",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.client = client
    app.state.metrics = metrics or (client.orchestrator.metrics if client else get_metrics())
    app.state.started_at = time.time()
    app.state.rate_limiter = rate_limiter or RequestRateLimiter(
        settings.rate_limit_per_minute if settings else DEFAULT_REQUESTS_PER_MINUTE
    )
    app.state.realtime = RealtimeHub()

    app.add_middleware(ObservabilityMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    def get_client(request: Request) -> TarsClient:
        return request.app.state.client

    # ============================================================
    # Endpoints
    # ============================================================

    api = APIRouter(prefix="/api", dependencies=[Depends(enforce_rate_limit)])

    @api.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        providers = get_client(request).get_provider_status()
        all_down = bool(providers) and all(
            p["status"] == HealthStatus.ERROR.value for p in providers.values()
        )

        return {
            "status": "degraded" if all_down else "healthy",
            "uptime": round(time.time() - request.app.state.started_at, 3),
            "providers": providers,
            "timestamp": int(time.time() * 1000),
        }

    @api.get("/providers")
    async def list_providers(request: Request):
        return get_client(request).get_provider_status()

    @api.post("/test-connection")
    async def test_connection(request: Request):
        return await get_client(request).test_connection()

    @api.post("/analyze")
    async def analyze(body: AnalyzeRequest, request: Request):
        _require_text(body.content, "content", "Content is required and must be a string.")
        result = await get_client(request).analyze_content(
            body.content, body.analysisType, _call_options(body.options)
        )
        return result.to_dict()

    @api.post("/generate")
    async def generate(body: GenerateRequest, request: Request):
        _require_text(body.type, "type", "Type and context are required.")
        if not body.context:
            raise InvalidRequestError("Type and context are required.", param="context")
        result = await get_client(request).generate_content(
            body.type, body.context, _call_options(body.options)
        )
        payload = result.to_dict()
        await request.app.state.realtime.broadcast("generate_complete", {
            **payload,
            "type": body.type,
            "context": body.context.get("title") or "Generated content",
        })
        return payload

    @api.post("/format")
    async def format_content(body: FormatRequest, request: Request):
        _require_text(body.content, "content", "Content is required and must be a string.")
        result = await get_client(request).format_content(
            body.content, body.formatType, _call_options(body.options)
        )
        payload = {**result.to_dict(), "formatType": body.formatType}
        await request.app.state.realtime.broadcast(
            "format_complete", {**payload, "timestamp": int(time.time() * 1000)}
        )
        return payload

    app.include_router(api)

    @app.get("/metrics")
    async def prometheus_metrics(request: Request):
        """Prometheus metrics endpoint."""
        return metrics_endpoint(request.app.state.metrics.registry)

    @app.websocket("/ws")
    async def realtime_channel(websocket: WebSocket):
        await websocket.app.state.realtime.serve(websocket, websocket.app.state.client)

    # ============================================================
    # Error handlers
    # ============================================================

    @app.exception_handler(TarsException)
    async def tars_exception_handler(request: Request, exc: TarsException):
        """Handle all canonical TARS errors."""
        if not exc.error.request_id:
            exc.error.request_id = getattr(request.state, "request_id", "")

        headers = {
            "X-Error-Type": exc.error.type.value,
            "X-Error-Code": exc.error.code,
        }
        if exc.error.request_id:
            headers["X-Request-Id"] = exc.error.request_id
        if exc.error.retry_after is not None:
            headers["Retry-After"] = str(exc.error.retry_after)

        return JSONResponse(
            status_code=exc.status_code,
            content=exc.error.to_dict(),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Report malformed bodies with the canonical 400 error."""
        errors = exc.errors()
        param = ".".join(str(p) for p in errors[0]["loc"][1:]) if errors else ""
        error = InvalidRequestError(
            errors[0]["msg"] if errors else "Invalid request body",
            param=param,
            request_id=getattr(request.state, "request_id", "") or f"req_{uuid.uuid4().hex[:24]}",
        )
        return await tars_exception_handler(request, error)

    return app


app = create_app()


# ============================================================
# Run server
# ============================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tars.server:app",
        host="127.0.0.1",
        port=load_settings().port,
    )
