"""
TARS - Stub Provider Adapter

Deterministic in-process provider used for local smoke runs and tests.
No network calls, no provider keys required.

Behaviour is driven by the descriptor's ``options``:
- ``reply``: text to return (default "stub: deterministic response")
- ``fail``: when true every call raises ProviderCallError
- ``latency``: seconds to sleep before answering
"""

import asyncio
import time
from typing import Any, Dict, Optional

from .base import BaseProvider
from ..core.models import CallOptions, CallResult, Usage
from ..core.errors import ProviderCallError


DEFAULT_STUB_REPLY = "stub: deterministic response"


class StubProvider(BaseProvider):
    """Deterministic provider for tests/smoke checks."""

    @property
    def endpoint(self) -> str:
        return ""

    def _build_headers(self) -> Dict[str, str]:
        return {}

    def _build_payload(self, prompt: str, content: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        return {}

    def _parse_response(self, data: Dict[str, Any]) -> CallResult:
        return CallResult(text=DEFAULT_STUB_REPLY)

    async def call(
        self,
        prompt: str,
        content: str,
        options: Optional[CallOptions] = None
    ) -> CallResult:
        settings = self.descriptor.options
        start_time = time.perf_counter()

        latency = float(settings.get("latency", 0) or 0)
        if latency:
            await asyncio.sleep(latency)

        if settings.get("fail"):
            raise ProviderCallError(self.name, str(settings.get("error", "stub failure")))

        text = str(settings.get("reply", DEFAULT_STUB_REPLY))
        return CallResult(
            text=text,
            usage=Usage(prompt_tokens=8, completion_tokens=6),
            provider=self.key,
            model=self.descriptor.model or "stub",
            response_time=int((time.perf_counter() - start_time) * 1000),
        )

    async def close(self):
        return
