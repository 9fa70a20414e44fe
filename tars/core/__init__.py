"""
TARS Core Module

Data models and the canonical error taxonomy shared by every layer.
"""

from .models import (
    # Enums
    ApiFamily,
    HealthStatus,
    Role,

    # Descriptors
    ProviderDescriptor,

    # Requests
    CallOptions,
    CallRequest,

    # Responses
    CallResult,
    Usage,
    NO_PROVIDER,
)

from .errors import (
    # Error types
    ErrorType,
    ErrorDetails,
    TarsException,

    # Infra errors
    InfraError,
    ProviderCallError,
    ProviderTimeoutError,
    ProviderConnectionError,
    UpstreamError,
    RateLimitedError,
    ProviderRejectedError,
    MalformedResponseError,
    AllProvidersFailedError,

    # Semantic errors
    SemanticError,
    ConfigurationError,
    NoProvidersAttemptedError,
    InvalidRequestError,
    ClientRateLimitedError,

    # Factory
    handle_provider_error,
)

__all__ = [
    "ApiFamily",
    "HealthStatus",
    "Role",
    "ProviderDescriptor",
    "CallOptions",
    "CallRequest",
    "CallResult",
    "Usage",
    "NO_PROVIDER",
    "ErrorType",
    "ErrorDetails",
    "TarsException",
    "InfraError",
    "ProviderCallError",
    "ProviderTimeoutError",
    "ProviderConnectionError",
    "UpstreamError",
    "RateLimitedError",
    "ProviderRejectedError",
    "MalformedResponseError",
    "AllProvidersFailedError",
    "SemanticError",
    "ConfigurationError",
    "NoProvidersAttemptedError",
    "InvalidRequestError",
    "ClientRateLimitedError",
    "handle_provider_error",
]
