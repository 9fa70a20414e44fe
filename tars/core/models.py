"""
TARS - Core Data Models

Provider descriptors and the uniform call request/result shapes that every
feature module consumes, whatever backend produced the answer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# Enums
# ============================================================

class ApiFamily(str, Enum):
    """API dialect of a provider. Decides auth headers and wire shape."""
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    DEEPSEEK = "deepseek"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"
    STUB = "stub"

    @property
    def requires_api_key(self) -> bool:
        return self not in (ApiFamily.OLLAMA, ApiFamily.STUB)


class HealthStatus(str, Enum):
    """Health classification of a provider."""
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    ERROR = "error"


class Role(str, Enum):
    """Message roles."""
    SYSTEM = "system"
    USER = "user"


# ============================================================
# Provider descriptor
# ============================================================

@dataclass(frozen=True)
class ProviderDescriptor:
    """
    Immutable connection and model settings for one AI backend.

    Loaded once from configuration. ``api_key`` is resolved from the
    environment at load time and never printed.
    """
    key: str
    name: str
    api: ApiFamily
    base_url: str
    model: str
    max_tokens: int = 4000
    temperature: float = 0.7
    cost_per_token: float = 0.0
    api_key: Optional[str] = field(default=None, repr=False)
    timeout: float = 30.0
    # Stub-only knobs
    options: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


# ============================================================
# Requests
# ============================================================

@dataclass
class CallOptions:
    """Optional per-call overrides."""
    preferred_model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None

    def merged(self, **overrides: Any) -> "CallOptions":
        """Return a copy with non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CallOptions":
        """
        Build from a camelCase or snake_case mapping.

        Raises:
            ValueError: If a limit is not numeric
        """
        data = data or {}
        preferred = data.get("preferredModel", data.get("preferred_model"))
        max_tokens = data.get("maxTokens", data.get("max_tokens"))
        temperature = data.get("temperature")

        for name, value in (("maxTokens", max_tokens), ("temperature", temperature)):
            if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
                raise ValueError(f"{name} must be a number")

        return cls(
            preferred_model=str(preferred) if preferred else None,
            max_tokens=int(max_tokens) if max_tokens is not None else None,
            temperature=float(temperature) if temperature is not None else None,
        )


@dataclass
class CallRequest:
    """A (prompt, content, options) triple. Never persisted."""
    prompt: str
    content: str
    options: CallOptions = field(default_factory=CallOptions)


# ============================================================
# Responses
# ============================================================

@dataclass
class Usage:
    """Token usage information."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self):
        if self.total_tokens == 0:
            self.total_tokens = self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Usage":
        data = data or {}
        return cls(
            prompt_tokens=int(data.get("prompt_tokens") or 0),
            completion_tokens=int(data.get("completion_tokens") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
        )


NO_PROVIDER = "none"


@dataclass
class CallResult:
    """
    Normalized outcome of a completion attempt.

    Its shape never varies by provider. Failures are in-band:
    ``error=True`` with ``provider="none"`` and a human-readable ``text``.
    """
    text: str
    usage: Usage = field(default_factory=Usage)
    provider: str = NO_PROVIDER
    response_time: Optional[int] = None
    model: Optional[str] = None
    error: bool = False

    @property
    def success(self) -> bool:
        return not self.error

    @classmethod
    def failure(cls, text: str) -> "CallResult":
        return cls(text=text, usage=Usage(), provider=NO_PROVIDER, error=True)

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape consumed by feature modules and the HTTP surface."""
        if self.error:
            return {
                "text": self.text,
                "usage": {"total_tokens": 0},
                "error": True,
                "provider": NO_PROVIDER,
            }

        result: Dict[str, Any] = {
            "text": self.text,
            "usage": self.usage.to_dict(),
            "provider": self.provider,
            "responseTime": self.response_time,
        }
        if self.model:
            result["model"] = self.model
        return result
