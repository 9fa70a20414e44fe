"""
TARS - Prometheus Metrics

Metrics exposed:
- tars_http_requests_total: Counter of API requests by endpoint, method and status
- tars_http_request_duration_seconds: Histogram of API request latency
- tars_provider_calls_total: Counter of provider attempts by provider and outcome
- tars_provider_call_duration_seconds: Histogram of provider attempt latency
- tars_fallbacks_total: Counter of failovers from one provider to the next
- tars_all_providers_failed_total: Counter of exhausted fallback chains
- tars_health_check_total: Counter of background probe results
- tars_health_check_duration_seconds: Histogram of probe latency
- tars_provider_health_state: Gauge of tracked health (0=unknown, 1=healthy, 2=error)

Usage:
    from tars.observability.metrics import get_metrics, metrics_endpoint

    metrics = get_metrics()
    metrics.record_provider_call("deepseek", success=True, duration_seconds=1.2)

    @app.get("/metrics")
    async def metrics():
        return metrics_endpoint()
"""

from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)
from fastapi import Response

from ..core.models import HealthStatus


HEALTH_STATE_VALUES = {
    HealthStatus.UNKNOWN: 0,
    HealthStatus.HEALTHY: 1,
    HealthStatus.ERROR: 2,
}


class MetricsCollector:
    """
    Central metrics collector using the Prometheus client.

    One instance per CollectorRegistry. Tests pass a fresh registry.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        self.info = Info(
            "tars",
            "TARS provider orchestration information",
            registry=registry,
        )
        self.info.info({
            "version": "1.0.0",
            "service": "tars-provider-orchestration",
        })

        self.http_requests = Counter(
            "tars_http_requests_total",
            "Total HTTP API requests",
            labelnames=["endpoint", "method", "status_code"],
            registry=registry,
        )

        self.http_request_duration = Histogram(
            "tars_http_request_duration_seconds",
            "HTTP API request duration in seconds",
            labelnames=["endpoint"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 90.0),
            registry=registry,
        )

        self.provider_calls = Counter(
            "tars_provider_calls_total",
            "Total provider call attempts",
            labelnames=["provider", "status"],  # status = success/failure
            registry=registry,
        )

        # AI calls typically range from 0.1s to the 30s timeout
        self.provider_call_duration = Histogram(
            "tars_provider_call_duration_seconds",
            "Provider call duration in seconds",
            labelnames=["provider"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, float("inf")),
            registry=registry,
        )

        self.fallbacks = Counter(
            "tars_fallbacks_total",
            "Total failovers to the next provider",
            labelnames=["from_provider", "to_provider"],
            registry=registry,
        )

        self.all_providers_failed = Counter(
            "tars_all_providers_failed_total",
            "Total orchestrated calls where every provider failed",
            registry=registry,
        )

        self.health_checks = Counter(
            "tars_health_check_total",
            "Background health probe results",
            labelnames=["provider", "result"],  # result = success/failure
            registry=registry,
        )

        self.health_check_duration = Histogram(
            "tars_health_check_duration_seconds",
            "Health probe duration",
            labelnames=["provider"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=registry,
        )

        self.health_state = Gauge(
            "tars_provider_health_state",
            "Tracked provider health (0=unknown, 1=healthy, 2=error)",
            labelnames=["provider"],
            registry=registry,
        )

    def record_request(self, endpoint: str, method: str, status_code: int, duration_seconds: float):
        """Record an HTTP request to the API surface."""
        self.http_requests.labels(endpoint=endpoint, method=method, status_code=str(status_code)).inc()
        self.http_request_duration.labels(endpoint=endpoint).observe(duration_seconds)

    def record_provider_call(self, provider: str, success: bool, duration_seconds: float):
        """Record one provider attempt."""
        status = "success" if success else "failure"
        self.provider_calls.labels(provider=provider, status=status).inc()
        self.provider_call_duration.labels(provider=provider).observe(duration_seconds)

    def record_fallback(self, from_provider: str, to_provider: str):
        """Record a failover between providers."""
        self.fallbacks.labels(
            from_provider=from_provider,
            to_provider=to_provider,
        ).inc()

    def record_all_failed(self):
        self.all_providers_failed.inc()

    def record_health_check(self, provider: str, success: bool, duration_seconds: float):
        """Record health probe result."""
        self.health_check_duration.labels(provider=provider).observe(duration_seconds)
        result = "success" if success else "failure"
        self.health_checks.labels(provider=provider, result=result).inc()

    def set_health_state(self, provider: str, status: HealthStatus):
        self.health_state.labels(provider=provider).set(HEALTH_STATE_VALUES[status])


# Module-level instance for the default registry
_metrics_instance: Optional[MetricsCollector] = None


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> MetricsCollector:
    """
    Setup metrics collection.

    Safe to call multiple times - returns the existing instance for the
    same registry.
    """
    global _metrics_instance

    if _metrics_instance is not None and _metrics_instance.registry is registry:
        return _metrics_instance

    _metrics_instance = MetricsCollector(registry)
    return _metrics_instance


def get_metrics() -> MetricsCollector:
    """Get the metrics collector, creating it on the default registry if needed."""
    if _metrics_instance is None:
        return setup_metrics()
    return _metrics_instance


def metrics_endpoint(registry: Optional[CollectorRegistry] = None) -> Response:
    """Generate Prometheus metrics endpoint response."""
    if registry is None:
        registry = _metrics_instance.registry if _metrics_instance else REGISTRY
    content = generate_latest(registry)
    return Response(
        content=content,
        media_type=CONTENT_TYPE_LATEST,
    )
