"""
TARS - Observability Tests

Tests for the observability stack:
- Prometheus metrics
- Structured logging
- Middleware integration
"""

import json
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from tars.core.models import HealthStatus
from tars.observability.metrics import MetricsCollector, metrics_endpoint
from tars.observability.logging import (
    JSONFormatter,
    LogContext,
    TimedOperation,
    get_logger,
)
from tars.observability.middleware import ObservabilityMiddleware


# ============================================================
# Metrics Tests
# ============================================================

class TestMetricsCollector:
    """Tests for MetricsCollector."""

    @pytest.fixture
    def fresh_registry(self):
        """Create a fresh registry for each test."""
        return CollectorRegistry()

    @pytest.fixture
    def collector(self, fresh_registry):
        return MetricsCollector(registry=fresh_registry)

    def test_record_provider_call(self, collector, fresh_registry):
        collector.record_provider_call("deepseek", success=True, duration_seconds=1.2)
        collector.record_provider_call("deepseek", success=False, duration_seconds=0.3)

        assert fresh_registry.get_sample_value(
            "tars_provider_calls_total", {"provider": "deepseek", "status": "success"}
        ) == 1.0
        assert fresh_registry.get_sample_value(
            "tars_provider_call_duration_seconds_count", {"provider": "deepseek"}
        ) == 2.0

    def test_health_state_values(self, collector, fresh_registry):
        """Gauge encodes unknown=0, healthy=1, error=2."""
        for status, expected in [
            (HealthStatus.UNKNOWN, 0.0),
            (HealthStatus.HEALTHY, 1.0),
            (HealthStatus.ERROR, 2.0),
        ]:
            collector.set_health_state("ollama", status)
            assert fresh_registry.get_sample_value(
                "tars_provider_health_state", {"provider": "ollama"}
            ) == expected

    def test_record_request(self, collector, fresh_registry):
        collector.record_request("/api/analyze", "POST", 200, 0.5)

        assert fresh_registry.get_sample_value(
            "tars_http_requests_total",
            {"endpoint": "/api/analyze", "method": "POST", "status_code": "200"},
        ) == 1.0

    def test_metrics_endpoint_renders_registry(self, collector, fresh_registry):
        collector.record_all_failed()

        response = metrics_endpoint(fresh_registry)

        assert response.media_type.startswith("text/plain")
        assert b"tars_all_providers_failed_total 1.0" in response.body


# ============================================================
# Logging Tests
# ============================================================

def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("tars.test", logging.INFO, __file__, 1, "Calling DeepSeek", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(make_record(provider="deepseek")))

        assert data["level"] == "INFO"
        assert data["logger"] == "tars.test"
        assert data["message"] == "Calling DeepSeek"
        assert data["provider"] == "deepseek"

    def test_sensitive_fields_redacted(self):
        data = json.loads(JSONFormatter().format(make_record(api_key="sk-secret", authorization="Bearer x")))

        assert data["api_key"] == "[REDACTED]"
        assert data["authorization"] == "[REDACTED]"

    def test_token_counters_not_redacted(self):
        data = json.loads(JSONFormatter().format(make_record(max_tokens=10, total_tokens=18)))

        assert data["max_tokens"] == 10
        assert data["total_tokens"] == 18

    def test_context_injected(self):
        token = LogContext.set_current(LogContext(request_id="req_123", operation="call_model"))
        try:
            data = json.loads(JSONFormatter().format(make_record()))
        finally:
            LogContext.reset(token)

        assert data["request_id"] == "req_123"
        assert data["operation"] == "call_model"


class TestLogContext:

    def test_to_dict_skips_empty_fields(self):
        assert LogContext(request_id="req_1").to_dict() == {"request_id": "req_1"}
        assert LogContext().to_dict() == {}

    def test_reset_restores_previous(self):
        outer = LogContext.set_current(LogContext(request_id="outer"))
        inner = LogContext.set_current(LogContext(request_id="inner"))

        LogContext.reset(inner)
        assert LogContext.get_current().request_id == "outer"

        LogContext.reset(outer)


class TestStructuredLogger:

    def test_kwargs_become_record_fields(self, caplog):
        logger = get_logger("tars.test.structured")

        with caplog.at_level(logging.INFO, logger="tars.test.structured"):
            logger.info("Provider failed", provider="deepseek", error_code="upstream_503")

        record = caplog.records[-1]
        assert record.provider == "deepseek"
        assert record.error_code == "upstream_503"

    def test_timed_operation_logs_duration(self, caplog):
        logger = get_logger("tars.test.timed")

        with caplog.at_level(logging.DEBUG, logger="tars.test.timed"):
            with TimedOperation("health_probe_round", logger) as timer:
                pass

        assert timer.duration_ms is not None
        record = caplog.records[-1]
        assert record.getMessage() == "health_probe_round completed"
        assert record.duration_ms >= 0

    def test_timed_operation_logs_failure(self, caplog):
        logger = get_logger("tars.test.timed_failure")

        with caplog.at_level(logging.DEBUG, logger="tars.test.timed_failure"):
            with pytest.raises(RuntimeError):
                with TimedOperation("probe", logger):
                    raise RuntimeError("boom")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.error == "boom"


# ============================================================
# Middleware Tests
# ============================================================

class TestObservabilityMiddleware:

    @pytest.fixture
    def app(self):
        app = FastAPI()
        app.state.metrics = MetricsCollector(CollectorRegistry())
        app.add_middleware(ObservabilityMiddleware)

        @app.get("/api/echo")
        async def echo():
            ctx = LogContext.get_current()
            return {"request_id": ctx.request_id if ctx else None}

        return app

    def test_generates_request_id(self, app):
        response = TestClient(app).get("/api/echo")

        request_id = response.headers["X-Request-Id"]
        assert request_id.startswith("req_")
        assert response.json()["request_id"] == request_id

    def test_honours_incoming_request_id(self, app):
        response = TestClient(app).get("/api/echo", headers={"X-Request-Id": "req_abc"})

        assert response.headers["X-Request-Id"] == "req_abc"
        assert response.json()["request_id"] == "req_abc"

    def test_records_request_metrics(self, app):
        TestClient(app).get("/api/echo")

        assert app.state.metrics.registry.get_sample_value(
            "tars_http_requests_total",
            {"endpoint": "/api/echo", "method": "GET", "status_code": "200"},
        ) == 1.0

    def test_unmatched_paths_share_one_label(self, app):
        client = TestClient(app)
        client.get("/no/such/page")
        client.get("/another/missing/page")

        assert app.state.metrics.registry.get_sample_value(
            "tars_http_requests_total",
            {"endpoint": "unmatched", "method": "GET", "status_code": "404"},
        ) == 2.0
