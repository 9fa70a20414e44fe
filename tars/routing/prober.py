"""
TARS - Background Health Prober

Periodically self-tests every registered provider so the health tracker
reflects reality even when no traffic flows. Probes run concurrently, each
bounded by its own timeout; a failed probe is logged and recorded, never
raised.
"""

import asyncio
import time
from typing import Callable, Dict, Optional

from .registry import ProviderRegistry
from ..core.errors import ProviderTimeoutError, handle_provider_error
from ..providers.base import BaseProvider
from ..observability.logging import TimedOperation, get_logger
from ..observability.metrics import MetricsCollector, get_metrics


logger = get_logger(__name__)

DEFAULT_PROBE_INTERVAL = 120.0
DEFAULT_PROBE_TIMEOUT = 10.0


class HealthProber:
    """
    Periodic health checks over the registry.

    Usage:
        prober = HealthProber(registry)
        prober.start()
        ...
        await prober.stop()
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        interval: float = DEFAULT_PROBE_INTERVAL,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.registry = registry
        self.tracker = registry.tracker
        self.interval = interval
        self.probe_timeout = probe_timeout
        self.metrics = metrics or get_metrics()
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _probe(self, provider: BaseProvider) -> bool:
        start_time = self._clock()
        try:
            await asyncio.wait_for(provider.health_check(), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            error = ProviderTimeoutError(provider.name, self.probe_timeout)
        except Exception as e:
            error = handle_provider_error(e, provider.name)
        else:
            elapsed_ms = int((self._clock() - start_time) * 1000)
            status = self.tracker.record_outcome(provider.key, True, elapsed_ms)
            self.metrics.record_health_check(provider.key, True, elapsed_ms / 1000)
            self.metrics.set_health_state(provider.key, status)
            logger.debug("Health check passed", provider=provider.key, latency_ms=elapsed_ms)
            return True

        status = self.tracker.record_outcome(provider.key, False)
        self.metrics.record_health_check(provider.key, False, self._clock() - start_time)
        self.metrics.set_health_state(provider.key, status)
        logger.warning(
            f"Health check failed for {provider.name}",
            provider=provider.key,
            error=error.error.message,
        )
        return False

    async def probe_all(self) -> Dict[str, bool]:
        """
        Probe every registered provider concurrently.

        Returns:
            Map of provider key to probe outcome
        """
        providers = self.registry.providers()
        async with TimedOperation("health_probe_round", logger):
            outcomes = await asyncio.gather(*(self._probe(p) for p in providers))
        results = {p.key: ok for p, ok in zip(providers, outcomes)}

        healthy = sum(1 for ok in outcomes if ok)
        logger.info(
            "Health probe round complete",
            healthy=healthy,
            total=len(providers),
        )
        return results

    def start(self):
        """Start the periodic probe loop. The first round runs after one interval."""
        if self.running:
            return

        async def probe_loop():
            while True:
                await asyncio.sleep(self.interval)
                try:
                    await self.probe_all()
                except Exception as e:
                    logger.exception("Health probe round failed", error=str(e))

        self._task = asyncio.create_task(probe_loop())
        logger.info("Health prober started", interval=self.interval)

    async def stop(self):
        """Cancel the probe loop and wait for it to finish."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Health prober stopped")
