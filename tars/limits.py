"""
TARS - Request Rate Limiting

Per-client request limit for the HTTP surface (100 requests per minute by
default, keyed by client address).

Counts are kept in one-second buckets over a sliding window, so a burst at
the end of one minute still counts against the start of the next.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


DEFAULT_REQUESTS_PER_MINUTE = 100


@dataclass
class LimitCheckResult:
    """Result of checking a client against the limit."""
    allowed: bool
    count: int
    limit: int
    retry_after: Optional[int] = None  # Seconds until a slot frees up


class SlidingWindowCounter:
    """Request counter over a sliding window of one-second buckets."""

    def __init__(self, window_seconds: int):
        self.window_seconds = window_seconds
        self._buckets: Dict[int, int] = {}  # timestamp -> count

    def add(self, now: int) -> None:
        self._buckets[now] = self._buckets.get(now, 0) + 1

    def count(self, now: int) -> int:
        self._cleanup(now)
        return sum(self._buckets.values())

    def oldest(self) -> Optional[int]:
        return min(self._buckets) if self._buckets else None

    def _cleanup(self, now: int):
        """Remove buckets that left the window."""
        cutoff = now - self.window_seconds
        self._buckets = {
            ts: count for ts, count in self._buckets.items()
            if ts > cutoff
        }


class RequestRateLimiter:
    """
    Per-client request limiter.

    A limit of 0 disables limiting. Rejected requests are not counted.
    """

    def __init__(
        self,
        requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self._clock = clock
        self._counters: Dict[str, SlidingWindowCounter] = {}
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.requests_per_minute > 0

    async def hit(self, client_id: str) -> LimitCheckResult:
        """Count one request for ``client_id`` if it fits under the limit."""
        if not self.enabled:
            return LimitCheckResult(allowed=True, count=0, limit=0)

        async with self._lock:
            now = int(self._clock())
            self._prune(now)

            counter = self._counters.setdefault(client_id, SlidingWindowCounter(self.window_seconds))
            current = counter.count(now)

            if current >= self.requests_per_minute:
                oldest = counter.oldest()
                retry_after = max((oldest or now) + self.window_seconds - now, 1)
                return LimitCheckResult(
                    allowed=False,
                    count=current,
                    limit=self.requests_per_minute,
                    retry_after=retry_after,
                )

            counter.add(now)
            return LimitCheckResult(allowed=True, count=current + 1, limit=self.requests_per_minute)

    def _prune(self, now: int):
        """Drop clients with no requests left in the window."""
        idle = [key for key, counter in self._counters.items() if counter.count(now) == 0]
        for key in idle:
            del self._counters[key]
