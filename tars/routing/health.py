"""
TARS - Health Tracking

Per-provider health records driving routing eligibility.

A provider is eligible for routing when any of these holds:
- its status is healthy
- its status is unknown and it has failed fewer than ``max_error_count`` times
- its last check is older than ``staleness_seconds`` (stale providers get
  another chance)

Records are created ``unknown`` at registration and never deleted.
"""

import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional

from ..core.models import HealthStatus, ProviderDescriptor


DEFAULT_MAX_ERROR_COUNT = 5
DEFAULT_STALENESS_SECONDS = 300


@dataclass
class HealthRecord:
    """Mutable health state of one provider."""
    status: HealthStatus = HealthStatus.UNKNOWN
    last_check: Optional[int] = None  # epoch ms
    response_time: Optional[int] = None  # ms
    error_count: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)


class HealthTracker:
    """
    Registry of health records keyed by provider key.

    Each record carries its own lock so outcomes from concurrent probes and
    in-flight calls never interleave mid-update.
    """

    def __init__(
        self,
        max_error_count: int = DEFAULT_MAX_ERROR_COUNT,
        staleness_seconds: float = DEFAULT_STALENESS_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.max_error_count = max_error_count
        self.staleness_seconds = staleness_seconds
        self._clock = clock
        self._records: Dict[str, HealthRecord] = {}
        self._lock = Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def register(self, key: str) -> HealthRecord:
        """Create an unknown record for a provider (idempotent)."""
        with self._lock:
            if key not in self._records:
                self._records[key] = HealthRecord()
            return self._records[key]

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def get_record(self, key: str) -> Optional[HealthRecord]:
        """Get a copy of the record for a provider, or None if unregistered."""
        record = self._records.get(key)
        if record is None:
            return None
        with record._lock:
            return HealthRecord(
                status=record.status,
                last_check=record.last_check,
                response_time=record.response_time,
                error_count=record.error_count,
            )

    def record_outcome(
        self,
        key: str,
        success: bool,
        response_time_ms: Optional[int] = None
    ) -> HealthStatus:
        """
        Record the result of a call or probe.

        Success resets the error count and stores the response time.
        Failure increments the error count and leaves response time as is.

        Raises:
            KeyError: If the provider was never registered
        """
        record = self._records[key]
        with record._lock:
            record.last_check = self._now_ms()
            if success:
                record.status = HealthStatus.HEALTHY
                record.error_count = 0
                record.response_time = response_time_ms
            else:
                record.status = HealthStatus.ERROR
                record.error_count += 1
            return record.status

    def is_eligible(self, key: str) -> bool:
        """Check if a provider may be routed to right now."""
        record = self._records.get(key)
        if record is None:
            return False

        with record._lock:
            if record.status == HealthStatus.HEALTHY:
                return True

            if record.status == HealthStatus.UNKNOWN and record.error_count < self.max_error_count:
                return True

            elapsed_ms = self._now_ms() - (record.last_check or 0)
            return elapsed_ms > self.staleness_seconds * 1000

    def snapshot(self, descriptors: Iterable[ProviderDescriptor]) -> Dict[str, Dict]:
        """
        Build the status map consumed by diagnostics.

        Returns fresh dicts; callers may mutate them freely.
        """
        result = {}
        for descriptor in descriptors:
            record = self.get_record(descriptor.key) or HealthRecord()
            result[descriptor.key] = {
                "name": descriptor.name,
                "status": record.status.value,
                "responseTime": record.response_time,
                "errorCount": record.error_count,
                "lastCheck": record.last_check,
                "costPerToken": descriptor.cost_per_token,
            }
        return result
