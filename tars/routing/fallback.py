"""
TARS - Fallback Orchestrator

Executes a call request against the registry's candidates strictly in
priority order:

- First success wins and is returned immediately
- Each failure is recorded in the health tracker and the next candidate
  is tried
- A provider is never retried within one execution
- An overall budget caps the whole chain; each attempt gets
  ``min(provider timeout, remaining budget)``

Exhausting the chain raises AllProvidersFailedError. Having nothing to try
raises NoProvidersAttemptedError, so callers can tell a configuration bug
from an outage.
"""

import asyncio
import time
import uuid
from typing import Callable, List, Optional

from .registry import ProviderRegistry
from ..core.errors import (
    AllProvidersFailedError,
    NoProvidersAttemptedError,
    ProviderCallError,
    ProviderTimeoutError,
    handle_provider_error,
)
from ..core.models import CallRequest, CallResult
from ..observability.logging import LogContext, get_logger
from ..observability.metrics import MetricsCollector, get_metrics


logger = get_logger(__name__)

DEFAULT_OVERALL_TIMEOUT = 90.0


class FallbackOrchestrator:
    """
    Sequential failover over the provider chain.

    Long-lived: one instance per process, shared by all requests, so the
    health state it writes carries across calls.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        overall_timeout: float = DEFAULT_OVERALL_TIMEOUT,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.tracker = registry.tracker
        self.overall_timeout = overall_timeout
        self.metrics = metrics or get_metrics()
        self._clock = clock

        for key in registry.keys():
            self.metrics.set_health_state(key, self.tracker.get_record(key).status)

    async def execute(self, request: CallRequest) -> CallResult:
        """
        Run the request through the chain.

        Returns:
            CallResult of the first provider that succeeded

        Raises:
            AllProvidersFailedError: Every attempted provider failed
            NoProvidersAttemptedError: No provider was attempted
        """
        ctx = LogContext.get_current()
        token = None
        if ctx is None or not ctx.request_id:
            token = LogContext.set_current(
                LogContext(request_id=f"req_{uuid.uuid4().hex[:12]}", operation="call_model")
            )

        try:
            return await self._execute(request)
        finally:
            if token is not None:
                LogContext.reset(token)

    async def _execute(self, request: CallRequest) -> CallResult:
        candidates = self.registry.ordered_candidates(request.options.preferred_model)
        if not candidates:
            raise NoProvidersAttemptedError("candidate list is empty")

        deadline = self._clock() + self.overall_timeout
        tried: List[str] = []
        last_error: Optional[ProviderCallError] = None

        for provider in candidates:
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning(
                    "Overall call budget exhausted",
                    overall_timeout=self.overall_timeout,
                    providers_tried=tried,
                )
                break

            if tried:
                self.metrics.record_fallback(tried[-1], provider.key)
                logger.info(
                    f"Falling back to {provider.name}",
                    from_provider=tried[-1],
                    to_provider=provider.key,
                )

            tried.append(provider.key)
            attempt_timeout = min(provider.timeout, remaining)
            start_time = self._clock()

            try:
                result = await asyncio.wait_for(
                    provider.call(request.prompt, request.content, request.options),
                    timeout=attempt_timeout,
                )
            except asyncio.TimeoutError:
                last_error = ProviderTimeoutError(provider.name, attempt_timeout)
            except ProviderCallError as e:
                last_error = e
            except Exception as e:
                last_error = handle_provider_error(e, provider.name)
            else:
                elapsed_ms = int((self._clock() - start_time) * 1000)
                status = self.tracker.record_outcome(provider.key, True, elapsed_ms)
                self.metrics.set_health_state(provider.key, status)
                self.metrics.record_provider_call(provider.key, True, elapsed_ms / 1000)

                result.provider = provider.key
                result.response_time = elapsed_ms
                logger.info(
                    f"Successfully used {provider.name}",
                    provider=provider.key,
                    latency_ms=elapsed_ms,
                    attempts=len(tried),
                )
                return result

            elapsed_ms = int((self._clock() - start_time) * 1000)
            status = self.tracker.record_outcome(provider.key, False)
            self.metrics.set_health_state(provider.key, status)
            self.metrics.record_provider_call(provider.key, False, elapsed_ms / 1000)
            logger.warning(
                f"Provider {provider.name} failed",
                provider=provider.key,
                error=last_error.error.message,
                error_code=last_error.error.code,
                latency_ms=elapsed_ms,
            )

        if last_error is None:
            raise NoProvidersAttemptedError("overall timeout elapsed before the first attempt")

        self.metrics.record_all_failed()
        logger.error(
            "All providers failed",
            providers_tried=tried,
            last_provider=tried[-1],
            error=last_error.error.message,
        )
        raise AllProvidersFailedError(
            providers=tried,
            last_provider=tried[-1],
            last_error=last_error.error.message,
        )
