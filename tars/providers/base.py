"""
TARS - Provider Base

Abstract base class for AI provider adapters.
Each API dialect (OpenAI-compatible, Anthropic) implements this interface.

The adapter is responsible for:
1. Converting a (prompt, content, options) triple into the dialect's request
2. Making the API call with a bounded timeout
3. Normalizing the dialect's response into a CallResult
4. Mapping transport and HTTP failures into ProviderCallError
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..core.models import (
    CallOptions,
    CallResult,
    ProviderDescriptor,
    Role,
    Usage,
)
from ..core.errors import (
    MalformedResponseError,
    handle_provider_error,
)
from ..observability.logging import get_logger


logger = get_logger(__name__)

HEALTH_CHECK_SYSTEM_PROMPT = "You are a helpful assistant."
HEALTH_CHECK_CONTENT = 'Reply with just "OK" to confirm you are working.'
HEALTH_CHECK_MAX_TOKENS = 10


class BaseProvider(ABC):
    """
    One configured AI backend.

    Holds only its immutable descriptor and an HTTP client; no state is
    shared across calls.
    """

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.descriptor = descriptor
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def key(self) -> str:
        return self.descriptor.key

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def timeout(self) -> float:
        return self.descriptor.timeout

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.descriptor.base_url.rstrip("/"),
                headers=self._build_headers(),
                timeout=self.descriptor.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    # ============================================================
    # Dialect hooks
    # ============================================================

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Path of the completion endpoint, relative to base_url."""

    @abstractmethod
    def _build_headers(self) -> Dict[str, str]:
        """Auth and content headers for this dialect."""

    @abstractmethod
    def _build_payload(self, prompt: str, content: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        """Build the dialect-specific request body."""

    @abstractmethod
    def _parse_response(self, data: Dict[str, Any]) -> CallResult:
        """
        Normalize a dialect response body.

        Must raise MalformedResponseError rather than return empty text.
        """

    # ============================================================
    # Public contract
    # ============================================================

    def _messages(self, prompt: str, content: str) -> List[Dict[str, str]]:
        return [
            {"role": Role.SYSTEM.value, "content": prompt},
            {"role": Role.USER.value, "content": content},
        ]

    async def call(
        self,
        prompt: str,
        content: str,
        options: Optional[CallOptions] = None
    ) -> CallResult:
        """
        Perform one completion call.

        Args:
            prompt: System instruction text
            content: User payload text
            options: Optional token/temperature overrides

        Returns:
            CallResult with text, usage and model filled in

        Raises:
            ProviderCallError: On network failure, timeout, non-2xx status
                or a response that cannot be normalized
        """
        options = options or CallOptions()
        max_tokens = options.max_tokens or self.descriptor.max_tokens
        temperature = options.temperature if options.temperature is not None else self.descriptor.temperature

        payload = self._build_payload(prompt, content, max_tokens, temperature)

        logger.debug(
            f"Calling {self.name}",
            provider=self.key,
            model=self.descriptor.model,
            max_tokens=max_tokens,
        )

        start_time = time.perf_counter()
        try:
            response = await self._get_client().post(self.endpoint, json=payload)
            response.raise_for_status()
        except Exception as e:
            error = handle_provider_error(e, self.name)
            logger.error(
                f"{self.name} API call failed",
                provider=self.key,
                error=error.error.message,
                error_code=error.error.code,
            )
            raise error

        try:
            data = response.json()
        except ValueError:
            raise MalformedResponseError(self.name, "body is not valid JSON")

        if not isinstance(data, dict):
            raise MalformedResponseError(self.name, "response body is not a JSON object")

        result = self._parse_response(data)
        result.provider = self.key
        result.model = result.model or self.descriptor.model
        result.response_time = int((time.perf_counter() - start_time) * 1000)
        return result

    async def health_check(self) -> bool:
        """
        Minimal self-test call.

        Returns True iff the call completes; the generated text is discarded.

        Raises:
            ProviderCallError: If the call fails
        """
        await self.call(
            HEALTH_CHECK_SYSTEM_PROMPT,
            HEALTH_CHECK_CONTENT,
            CallOptions(max_tokens=HEALTH_CHECK_MAX_TOKENS),
        )
        return True

    # ============================================================
    # Helpers for subclasses
    # ============================================================

    def _require_text(self, text: Any) -> str:
        if not isinstance(text, str) or not text.strip():
            raise MalformedResponseError(self.name, "empty or missing completion text")
        return text

    def _usage_or_zero(self, usage: Optional[Dict[str, Any]]) -> Usage:
        return Usage.from_dict(usage) if isinstance(usage, dict) else Usage()
