"""
TARS Providers Module

Dialect adapters that translate the uniform (prompt, content, options)
call into each backend's native API and normalize the answer back.
"""

from typing import Optional

import httpx

from .base import BaseProvider
from .openai_adapter import OpenAICompatibleProvider
from .anthropic_adapter import AnthropicProvider
from .stub_adapter import StubProvider
from ..core.models import ApiFamily, ProviderDescriptor

__all__ = [
    "BaseProvider",
    "OpenAICompatibleProvider",
    "AnthropicProvider",
    "StubProvider",
    "create_provider",
]


def create_provider(
    descriptor: ProviderDescriptor,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseProvider:
    """
    Factory function to get the adapter for a descriptor's API family.

    Args:
        descriptor: Provider connection settings
        transport: Optional httpx transport (tests use httpx.MockTransport)

    Returns:
        Configured provider instance
    """
    adapters = {
        ApiFamily.OPENAI: OpenAICompatibleProvider,
        ApiFamily.OPENROUTER: OpenAICompatibleProvider,
        ApiFamily.DEEPSEEK: OpenAICompatibleProvider,
        ApiFamily.OLLAMA: OpenAICompatibleProvider,
        ApiFamily.ANTHROPIC: AnthropicProvider,
        ApiFamily.STUB: StubProvider,
    }

    return adapters[descriptor.api](descriptor, transport=transport)
