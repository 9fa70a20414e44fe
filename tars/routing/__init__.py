"""
TARS Routing Module

Health tracking, priority ordering, failover and background probing.
"""

from .health import HealthRecord, HealthTracker
from .registry import ProviderRegistry
from .fallback import FallbackOrchestrator
from .prober import HealthProber

__all__ = [
    "HealthRecord",
    "HealthTracker",
    "ProviderRegistry",
    "FallbackOrchestrator",
    "HealthProber",
]
