"""
TARS - Client Facade

The single entry point feature modules use for AI calls.

Failures are in-band: no method here raises on provider trouble. Callers
branch on ``result.error`` so that batch loops survive a transient outage.

Usage:
    client = TarsClient.from_settings(load_settings())
    client.start()

    result = await client.analyze_content(text, "technical")
    if result.error:
        ...

    await client.aclose()
"""

import json
from typing import Any, Dict, Optional

import httpx

from .config import Settings
from .core.errors import TarsException
from .core.models import CallOptions, CallRequest, CallResult
from .providers import create_provider
from .providers.base import (
    HEALTH_CHECK_CONTENT,
    HEALTH_CHECK_MAX_TOKENS,
    HEALTH_CHECK_SYSTEM_PROMPT,
)
from .routing import FallbackOrchestrator, HealthProber, HealthTracker, ProviderRegistry
from .observability.logging import get_logger
from .observability.metrics import MetricsCollector


logger = get_logger(__name__)


ANALYZE_PROMPT = "Analyze the following content for {analysis_type} issues and return a JSON array of findings."

FORMAT_PROMPTS = {
    "reedsy": (
        "Format the following manuscript content for the Reedsy editor. "
        "Wrap each paragraph in <p> tags, keep dialogue intact, and return only the HTML."
    ),
    "markdown": (
        "Format the following content as clean Markdown. "
        "Preserve headings, paragraphs and lists, and return only the Markdown."
    ),
}
DEFAULT_FORMAT_PROMPT = "Format the following content as {format_type}. Return only the formatted content."

GENERATE_PROMPTS = {
    "query-letter": (
        "Write a professional query letter to a literary agent or publisher for the book "
        "described in the following JSON context. Include a hook, a short synopsis, "
        "comparable titles if given, and a brief author bio. Keep it under one page."
    ),
    "social-post": (
        "Write an engaging social media post promoting the book described in the following "
        "JSON context. Respect the platform's characterLimit and include relevant hashtags."
    ),
}
DEFAULT_GENERATE_PROMPT = "Generate {content_type} content using the following JSON context."


class TarsClient:
    """
    Facade over the fallback orchestrator.

    Built once at startup and passed by reference to whatever needs it.
    Owns the provider HTTP clients and the background prober.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        orchestrator: FallbackOrchestrator,
        prober: Optional[HealthProber] = None,
        default_model: Optional[str] = None,
    ):
        self.registry = registry
        self.orchestrator = orchestrator
        self.prober = prober
        self.default_model = default_model or registry.primary

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "TarsClient":
        """
        Wire tracker, providers, registry, orchestrator and prober from settings.

        Args:
            settings: Validated settings
            transport: Optional httpx transport shared by all providers
            metrics: Optional metrics collector (tests pass one on a fresh registry)
        """
        tracker = HealthTracker(
            max_error_count=settings.health.max_error_count,
            staleness_seconds=settings.health.staleness_seconds,
        )
        providers = [create_provider(d, transport=transport) for d in settings.providers]
        registry = ProviderRegistry(
            providers,
            primary=settings.primary,
            fallbacks=settings.fallbacks,
            tracker=tracker,
            prefer_hinted_provider=settings.routing.prefer_hinted_provider,
        )
        orchestrator = FallbackOrchestrator(
            registry,
            overall_timeout=settings.routing.overall_timeout,
            metrics=metrics,
        )
        prober = HealthProber(
            registry,
            interval=settings.health.probe_interval,
            probe_timeout=settings.health.probe_timeout,
            metrics=orchestrator.metrics,
        )

        logger.info(
            "TARS client configured",
            primary=settings.primary,
            fallbacks=settings.fallbacks,
            providers=registry.keys(),
        )
        return cls(registry, orchestrator, prober)

    # ============================================================
    # Lifecycle
    # ============================================================

    def start(self):
        """Start background health probing. Requires a running event loop."""
        if self.prober is not None:
            self.prober.start()

    async def aclose(self):
        """Stop probing and close provider connections."""
        if self.prober is not None:
            await self.prober.stop()
        await self.registry.close()

    async def __aenter__(self) -> "TarsClient":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    # ============================================================
    # Calls
    # ============================================================

    async def call_model(
        self,
        model_hint: Optional[str],
        prompt: str,
        content: str,
        options: Optional[CallOptions] = None,
    ) -> CallResult:
        """
        Route one generation through the provider chain.

        Args:
            model_hint: Preferred provider key; advisory unless
                ``routing.preferHintedProvider`` is enabled
            prompt: System instruction
            content: User payload
            options: Optional token/temperature overrides

        Returns:
            CallResult; on total failure ``error=True`` and ``provider="none"``
        """
        options = (options or CallOptions()).merged(preferred_model=model_hint)
        request = CallRequest(prompt=prompt, content=content, options=options)

        try:
            return await self.orchestrator.execute(request)
        except TarsException as e:
            logger.error(
                "AI call failed",
                error=e.error.message,
                error_code=e.error.code,
            )
            return CallResult.failure(e.error.message)

    def _hint(self, options: Optional[CallOptions]) -> Optional[str]:
        """A caller's preferred model wins over the client default."""
        if options is not None and options.preferred_model:
            return options.preferred_model
        return self.default_model

    async def analyze_content(
        self,
        content: str,
        analysis_type: str = "general",
        options: Optional[CallOptions] = None,
    ) -> CallResult:
        """Ask for a JSON array of findings about ``content``."""
        prompt = ANALYZE_PROMPT.format(analysis_type=analysis_type)
        return await self.call_model(self._hint(options), prompt, content, options)

    async def format_content(
        self,
        content: str,
        format_type: str = "reedsy",
        options: Optional[CallOptions] = None,
    ) -> CallResult:
        """Reformat ``content`` for a target editor or markup."""
        prompt = FORMAT_PROMPTS.get(format_type) or DEFAULT_FORMAT_PROMPT.format(format_type=format_type)
        return await self.call_model(self._hint(options), prompt, content, options)

    async def generate_content(
        self,
        content_type: str,
        context: Dict[str, Any],
        options: Optional[CallOptions] = None,
    ) -> CallResult:
        """
        Generate outreach material such as a query letter or social post.

        Args:
            content_type: "query-letter", "social-post" or any other label
            context: Book details (title, genre, platform, characterLimit, ...)
        """
        prompt = GENERATE_PROMPTS.get(content_type) or DEFAULT_GENERATE_PROMPT.format(content_type=content_type)
        content = json.dumps(context, indent=2, ensure_ascii=False, default=str)
        return await self.call_model(self._hint(options), prompt, content, options)

    async def test_connection(self) -> Dict[str, Any]:
        """
        One lightweight call through the chain.

        Returns:
            {success, message, provider, responseTime}
        """
        result = await self.call_model(
            self.default_model,
            HEALTH_CHECK_SYSTEM_PROMPT,
            HEALTH_CHECK_CONTENT,
            CallOptions(max_tokens=HEALTH_CHECK_MAX_TOKENS),
        )

        if result.error:
            return {
                "success": False,
                "message": result.text,
                "provider": result.provider,
                "responseTime": None,
            }

        return {
            "success": True,
            "message": "Connection successful",
            "provider": result.provider,
            "responseTime": result.response_time,
        }

    def get_provider_status(self) -> Dict[str, Dict]:
        """Health snapshot keyed by provider key."""
        return self.registry.status()
