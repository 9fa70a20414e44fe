"""
TARS - Observability Module

- Structured JSON logging with context injection
- Prometheus metrics for provider calls, failovers and health probes

Usage:
    from tars.observability import get_logger, get_metrics

    logger = get_logger(__name__)
    metrics = get_metrics()
"""

from .metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
    metrics_endpoint,
)
from .logging import (
    StructuredLogger,
    JSONFormatter,
    get_logger,
    setup_logging,
    LogContext,
    TimedOperation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "setup_metrics",
    "metrics_endpoint",
    # Logging
    "StructuredLogger",
    "JSONFormatter",
    "get_logger",
    "setup_logging",
    "LogContext",
    "TimedOperation",
]
