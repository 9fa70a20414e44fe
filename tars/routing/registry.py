"""
TARS - Provider Registry

Holds the configured providers and the priority chain
``[primary, *fallbacks]``, and answers "who may I try, in what order?".
"""

from typing import Dict, List, Optional, Sequence

from .health import HealthTracker
from ..core.errors import ConfigurationError
from ..core.models import ProviderDescriptor
from ..providers.base import BaseProvider
from ..observability.logging import get_logger


logger = get_logger(__name__)


class ProviderRegistry:
    """
    Priority-ordered collection of providers.

    Every registered provider gets a health record in the tracker; the two
    key sets are always identical.
    """

    def __init__(
        self,
        providers: Sequence[BaseProvider],
        primary: str,
        fallbacks: Sequence[str] = (),
        tracker: Optional[HealthTracker] = None,
        prefer_hinted_provider: bool = False,
    ):
        self._providers: Dict[str, BaseProvider] = {}
        for provider in providers:
            if provider.key in self._providers:
                raise ConfigurationError(f"Duplicate provider key: {provider.key}", param="providers.models")
            self._providers[provider.key] = provider

        if primary not in self._providers:
            raise ConfigurationError(
                f"Primary provider '{primary}' is not a configured, enabled provider",
                param="providers.primary",
            )

        chain: List[str] = []
        for key in [primary, *fallbacks]:
            if key not in self._providers:
                raise ConfigurationError(
                    f"Fallback provider '{key}' is not a configured, enabled provider",
                    param="providers.fallback",
                )
            if key not in chain:
                chain.append(key)

        self.primary = primary
        self._chain = chain
        self.prefer_hinted_provider = prefer_hinted_provider
        self.tracker = tracker or HealthTracker()

        for key in self._providers:
            self.tracker.register(key)

    # ============================================================
    # Lookup
    # ============================================================

    def get(self, key: str) -> BaseProvider:
        """
        Get a provider by key.

        Raises:
            KeyError: If no provider has that key
        """
        return self._providers[key]

    def keys(self) -> List[str]:
        """All registered provider keys, in registration order."""
        return list(self._providers)

    def providers(self) -> List[BaseProvider]:
        return list(self._providers.values())

    def descriptors(self) -> List[ProviderDescriptor]:
        return [provider.descriptor for provider in self._providers.values()]

    @property
    def chain(self) -> List[str]:
        """Priority order: primary first, then fallbacks."""
        return list(self._chain)

    # ============================================================
    # Routing
    # ============================================================

    def ordered_candidates(self, preferred: Optional[str] = None) -> List[BaseProvider]:
        """
        Providers to attempt, in priority order.

        Ineligible providers are dropped. When none is eligible, every
        chained provider is returned anyway so an outage of the health data
        never blocks all traffic.

        Args:
            preferred: Provider key hinted by the caller. Moved to the front
                only when ``prefer_hinted_provider`` is enabled and the
                provider is eligible.
        """
        eligible = [key for key in self._chain if self.tracker.is_eligible(key)]

        if not eligible:
            logger.warning(
                "No eligible providers, attempting full chain",
                chain=self._chain,
            )
            keys = list(self._chain)
        else:
            keys = eligible

        if (
            self.prefer_hinted_provider
            and preferred
            and preferred in eligible
        ):
            keys.remove(preferred)
            keys.insert(0, preferred)

        return [self._providers[key] for key in keys]

    def status(self) -> Dict[str, Dict]:
        """Health snapshot for every registered provider."""
        return self.tracker.snapshot(self.descriptors())

    async def close(self):
        """Close every provider's HTTP client."""
        for provider in self._providers.values():
            await provider.close()
