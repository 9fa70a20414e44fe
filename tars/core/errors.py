"""
TARS - Error Definitions

Error taxonomy with infra vs semantic classification:

- InfraError: a provider attempt failed (network, timeout, 5xx, 429,
  rejected request, garbled body). Recoverable by trying the next provider.
- SemanticError: the configuration or the request itself is wrong.
  Retrying another provider will not help.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx


class ErrorType(str, Enum):
    """Error classification."""
    INFRA = "infra_error"
    SEMANTIC = "semantic_error"


@dataclass
class ErrorDetails:
    """Full error information for API responses and logs."""
    # Core fields (always present)
    code: str
    message: str
    type: ErrorType

    # Context fields
    provider: Optional[str] = None
    param: Optional[str] = None

    # Trace fields
    request_id: str = ""

    # Recovery fields
    retryable: bool = False
    retry_after: Optional[int] = None
    fallback_attempted: Optional[bool] = None

    # Debug fields
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }

        if self.provider:
            result["provider"] = self.provider
        if self.param:
            result["param"] = self.param
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if self.fallback_attempted is not None:
            result["fallback_attempted"] = self.fallback_attempted
        if self.details:
            result["details"] = self.details

        return {"error": result}


class TarsException(Exception):
    """Base exception for all TARS errors."""

    def __init__(self, error: ErrorDetails, status_code: int = 500):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)


# ============================================================
# Infra Errors (recoverable by failover)
# ============================================================

class InfraError(TarsException):
    """Base class for infrastructure errors."""
    pass


class ProviderCallError(InfraError):
    """
    A single provider attempt failed.

    The message always names the provider, e.g.
    ``"DeepSeek API Error: upstream timed out"``.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        code: str = "provider_error",
        status_code: int = 502,
        retryable: bool = True,
        retry_after: Optional[int] = None,
        upstream_status: Optional[int] = None,
        request_id: str = "",
    ):
        self.provider = provider
        self.upstream_status = upstream_status
        details = {"upstream_status": upstream_status} if upstream_status else {}
        super().__init__(
            ErrorDetails(
                code=code,
                message=f"{provider} API Error: {message}",
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=retryable,
                retry_after=retry_after,
                details=details,
            ),
            status_code=status_code
        )


class ProviderTimeoutError(ProviderCallError):
    """Provider did not respond in time."""

    def __init__(self, provider: str, timeout: Optional[float] = None, request_id: str = ""):
        message = "request timed out"
        if timeout is not None:
            message = f"request timed out after {timeout:g}s"
        super().__init__(
            provider, message,
            code="provider_timeout",
            status_code=504,
            retry_after=10,
            request_id=request_id,
        )


class ProviderConnectionError(ProviderCallError):
    """Could not reach the provider at all."""

    def __init__(self, provider: str, reason: str = "", request_id: str = ""):
        super().__init__(
            provider,
            f"connection failed{': ' + reason if reason else ''}",
            code="connection_error",
            status_code=504,
            retry_after=5,
            request_id=request_id,
        )


class UpstreamError(ProviderCallError):
    """Provider returned a server error."""

    def __init__(self, provider: str, upstream_status: int, message: str = "", request_id: str = ""):
        code_map = {
            500: "upstream_500",
            502: "upstream_502",
            503: "upstream_503",
            504: "upstream_504",
        }
        super().__init__(
            provider,
            message or f"returned error {upstream_status}",
            code=code_map.get(upstream_status, "upstream_error"),
            status_code=502,
            retry_after=30,
            upstream_status=upstream_status,
            request_id=request_id,
        )


class RateLimitedError(ProviderCallError):
    """Provider rate limit exceeded."""

    def __init__(self, provider: str, retry_after: int = 60, request_id: str = ""):
        super().__init__(
            provider,
            f"rate limit exceeded. Retry after {retry_after} seconds.",
            code="rate_limited",
            status_code=429,
            retry_after=retry_after,
            upstream_status=429,
            request_id=request_id,
        )


class ProviderRejectedError(ProviderCallError):
    """
    Provider refused the request (auth failure, bad model, bad payload).

    Not retryable against the same provider, but the next provider in the
    chain may still accept it.
    """

    def __init__(self, provider: str, upstream_status: int, message: str, request_id: str = ""):
        code = "provider_auth_error" if upstream_status in (401, 403) else "provider_rejected"
        super().__init__(
            provider, message,
            code=code,
            status_code=502,
            retryable=False,
            upstream_status=upstream_status,
            request_id=request_id,
        )


class MalformedResponseError(ProviderCallError):
    """Provider answered 2xx but the body could not be normalized."""

    def __init__(self, provider: str, reason: str, request_id: str = ""):
        super().__init__(
            provider,
            f"malformed response ({reason})",
            code="malformed_response",
            status_code=502,
            request_id=request_id,
        )


class AllProvidersFailedError(InfraError):
    """Every candidate in the fallback chain was attempted and failed."""

    def __init__(
        self,
        providers: List[str],
        last_provider: str = "",
        last_error: str = "",
        request_id: str = "",
    ):
        self.providers_tried = list(providers)
        self.last_provider = last_provider
        self.last_error = last_error
        super().__init__(
            ErrorDetails(
                code="all_providers_failed",
                message=f"All providers failed. Last error: {last_error or 'Unknown error'}",
                type=ErrorType.INFRA,
                provider=last_provider or None,
                request_id=request_id,
                retryable=False,
                fallback_attempted=True,
                details={
                    "providers_tried": self.providers_tried,
                    "last_provider": last_provider,
                    "last_error": last_error,
                }
            ),
            status_code=503
        )


# ============================================================
# Semantic Errors (not retryable)
# ============================================================

class SemanticError(TarsException):
    """Base class for semantic errors (caller or operator must fix)."""
    pass


class ConfigurationError(SemanticError):
    """Startup configuration is invalid. The process must not serve traffic."""

    def __init__(self, message: str, param: str = ""):
        super().__init__(
            ErrorDetails(
                code="configuration_error",
                message=message,
                type=ErrorType.SEMANTIC,
                param=param or None,
                retryable=False
            ),
            status_code=500
        )


class NoProvidersAttemptedError(SemanticError):
    """The orchestrator had nothing to try."""

    def __init__(self, reason: str = "no candidate providers", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="no_providers_attempted",
                message=f"No providers attempted: {reason}",
                type=ErrorType.SEMANTIC,
                request_id=request_id,
                retryable=False,
                fallback_attempted=False
            ),
            status_code=503
        )


class InvalidRequestError(SemanticError):
    """Request validation failed."""

    def __init__(self, message: str, param: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="invalid_request",
                message=message,
                type=ErrorType.SEMANTIC,
                param=param or None,
                request_id=request_id,
                retryable=False
            ),
            status_code=400
        )


class ClientRateLimitedError(SemanticError):
    """The caller exceeded the server's own request limit (not a provider's)."""

    def __init__(self, limit: int, retry_after: int = 60, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="client_rate_limited",
                message=f"Too many requests ({limit} per minute), please try again later.",
                type=ErrorType.SEMANTIC,
                request_id=request_id,
                retryable=True,
                retry_after=retry_after,
                details={"limit": limit}
            ),
            status_code=429
        )


# ============================================================
# httpx -> canonical error mapping
# ============================================================

def _extract_upstream_message(response: httpx.Response) -> str:
    """
    Pull the human-readable message out of an error body.

    Handles the OpenAI/DeepSeek/OpenRouter shape ``{"error": {"message"}}``,
    the Anthropic shape ``{"type": "error", "error": {...}}`` and Ollama's
    ``{"error": "..."}``.
    """
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] if response.text else ""

    if isinstance(data, dict):
        error_info = data.get("error")
        if isinstance(error_info, dict):
            return str(error_info.get("message", ""))
        if isinstance(error_info, str):
            return error_info
        if "message" in data:
            return str(data["message"])
    return ""


def handle_provider_error(
    error: Exception,
    provider: str,
    request_id: str = ""
) -> ProviderCallError:
    """
    Convert an httpx (or unknown) error into a canonical ProviderCallError.

    Args:
        error: The exception raised while calling the provider
        provider: Display name of the provider (used in the message)
        request_id: Correlation ID

    Returns:
        ProviderCallError subclass
    """
    if isinstance(error, ProviderCallError):
        return error

    if isinstance(error, httpx.TimeoutException):
        if isinstance(error, httpx.ConnectTimeout):
            return ProviderConnectionError(provider, "connect timeout", request_id)
        return ProviderTimeoutError(provider, request_id=request_id)

    if isinstance(error, httpx.ConnectError):
        return ProviderConnectionError(provider, str(error), request_id)

    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        message = _extract_upstream_message(error.response) or str(error)

        # 429 - Rate limit
        if status_code == 429:
            retry_after = 60
            if "retry-after" in error.response.headers:
                try:
                    retry_after = int(error.response.headers["retry-after"])
                except ValueError:
                    pass
            return RateLimitedError(provider, retry_after, request_id)

        # 529 - Anthropic overloaded
        if status_code == 529:
            return UpstreamError(provider, 503, "temporarily overloaded", request_id)

        # 5xx - Server errors
        if status_code >= 500:
            return UpstreamError(provider, status_code, message, request_id)

        return ProviderRejectedError(provider, status_code, message, request_id)

    if isinstance(error, httpx.HTTPError):
        return ProviderConnectionError(provider, str(error), request_id)

    # Unknown error
    return ProviderCallError(provider, str(error) or type(error).__name__, request_id=request_id)
