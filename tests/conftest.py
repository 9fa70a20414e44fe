"""
TARS - Pytest Configuration

Configures:
- Smoke test handling (skip with SKIP_SMOKE=1)
- Descriptor factories, a fake clock and scripted providers for unit tests
"""

import asyncio
import os
import pytest
import logging
from typing import Any, List, Optional

from prometheus_client import CollectorRegistry

from tars.core.errors import ProviderCallError
from tars.core.models import ApiFamily, CallOptions, CallResult, ProviderDescriptor, Usage
from tars.observability.metrics import MetricsCollector


# ============================================================
# Environment Configuration
# ============================================================

def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


SKIP_SMOKE = _is_truthy(os.getenv("SKIP_SMOKE"))


# ============================================================
# Pytest Markers
# ============================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "smoke: mark test as smoke test (skip with SKIP_SMOKE=1)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip smoke tests when SKIP_SMOKE=1."""
    skip_smoke = pytest.mark.skip(
        reason="Smoke test skipped - SKIP_SMOKE=1"
    )

    for item in items:
        if "smoke" in item.keywords and SKIP_SMOKE:
            item.add_marker(skip_smoke)


# ============================================================
# Mock provider payloads
# ============================================================

@pytest.fixture
def mock_openai_response():
    """Standard mock OpenAI-style chat response."""
    return {
        "id": "chatcmpl-test123",
        "object": "chat.completion",
        "created": 1234567890,
        "model": "deepseek-chat",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "[\"passive voice in paragraph 2\"]"
                },
                "finish_reason": "stop"
            }
        ],
        "usage": {
            "prompt_tokens": 10,
            "completion_tokens": 8,
            "total_tokens": 18
        }
    }


@pytest.fixture
def mock_anthropic_response():
    """Standard mock Anthropic response."""
    return {
        "id": "msg-test123",
        "type": "message",
        "role": "assistant",
        "content": [
            {
                "type": "text",
                "text": "Hello! I'm a mock Claude response."
            }
        ],
        "model": "claude-3-5-haiku-latest",
        "stop_reason": "end_turn",
        "usage": {
            "input_tokens": 10,
            "output_tokens": 8
        }
    }


@pytest.fixture
def mock_error_500():
    """Mock 500 error response."""
    return {
        "error": {
            "code": "internal_error",
            "message": "Internal server error",
            "type": "server_error"
        }
    }


# ============================================================
# Descriptors, clocks, metrics
# ============================================================

def make_descriptor(
    key: str,
    api: ApiFamily = ApiFamily.OPENAI,
    **overrides: Any,
) -> ProviderDescriptor:
    """Build a descriptor with sensible test defaults."""
    values = {
        "key": key,
        "name": key.capitalize(),
        "api": api,
        "base_url": f"https://{key}.example.test/v1",
        "model": f"{key}-model",
        "api_key": f"sk-{key}-test",
    }
    values.update(overrides)
    return ProviderDescriptor(**values)


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def metrics():
    """Metrics collector on an isolated registry."""
    return MetricsCollector(CollectorRegistry())


# ============================================================
# Scripted providers
# ============================================================

class ScriptedProvider:
    """
    In-memory provider whose outcomes are scripted per call.

    Each outcome is either reply text or an exception instance to raise.
    When the script runs out, the last outcome repeats.
    """

    def __init__(
        self,
        key: str,
        outcomes: Optional[List[Any]] = None,
        delay: float = 0.0,
        timeout: float = 30.0,
    ):
        self.descriptor = make_descriptor(key, timeout=timeout)
        self.outcomes = list(outcomes or [f"{key} reply"])
        self.delay = delay
        self.calls: List[tuple] = []
        self.health_checks = 0
        self.closed = False

    @property
    def key(self) -> str:
        return self.descriptor.key

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def timeout(self) -> float:
        return self.descriptor.timeout

    def _next_outcome(self) -> Any:
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]

    async def call(self, prompt: str, content: str, options: Optional[CallOptions] = None) -> CallResult:
        self.calls.append((prompt, content, options))
        if self.delay:
            await asyncio.sleep(self.delay)

        outcome = self._next_outcome()
        if isinstance(outcome, BaseException):
            raise outcome
        return CallResult(
            text=outcome,
            usage=Usage(prompt_tokens=5, completion_tokens=5),
            provider=self.key,
            model=self.descriptor.model,
        )

    async def health_check(self) -> bool:
        self.health_checks += 1
        await self.call("probe", "Reply with just OK")
        return True

    async def close(self):
        self.closed = True


def failing(key: str, message: str = "boom") -> ProviderCallError:
    """A provider error as a scripted outcome."""
    return ProviderCallError(key.capitalize(), message)


# ============================================================
# Logging Configuration
# ============================================================

@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    yield

