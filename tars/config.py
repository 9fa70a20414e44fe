"""
TARS - Configuration

Loads provider and routing settings from a JSON file plus environment
overrides, and validates them before anything serves traffic.

Sources, in order of precedence:
1. Environment overrides: TARS_PRIMARY_PROVIDER, TARS_FALLBACK_PROVIDERS
   (comma list), LOG_LEVEL, PORT
2. The JSON file given by ``path``, TARS_CONFIG, or config/settings.json

Credentials never live in the file: each provider names the environment
variable holding its key via ``apiKeyEnv``.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .core.errors import ConfigurationError
from .core.models import ApiFamily, ProviderDescriptor


DEFAULT_CONFIG_PATH = Path("config") / "settings.json"


@dataclass
class HealthSettings:
    """Eligibility thresholds and probe cadence."""
    max_error_count: int = 5
    staleness_seconds: float = 300.0
    probe_interval: float = 120.0
    probe_timeout: float = 10.0


@dataclass
class RoutingSettings:
    """Failover behaviour."""
    overall_timeout: float = 90.0
    prefer_hinted_provider: bool = False


@dataclass
class Settings:
    """Validated runtime configuration."""
    primary: str
    fallbacks: List[str]
    providers: List[ProviderDescriptor]
    health: HealthSettings = field(default_factory=HealthSettings)
    routing: RoutingSettings = field(default_factory=RoutingSettings)
    port: int = 5000
    log_level: str = "INFO"
    rate_limit_per_minute: int = 100

    def get_provider(self, key: str) -> Optional[ProviderDescriptor]:
        for descriptor in self.providers:
            if descriptor.key == key:
                return descriptor
        return None


def _parse_api_family(key: str, raw: Any) -> ApiFamily:
    try:
        return ApiFamily(str(raw).lower())
    except ValueError:
        allowed = ", ".join(family.value for family in ApiFamily)
        raise ConfigurationError(
            f"Provider '{key}' has unknown api '{raw}'. Use one of: {allowed}",
            param=f"providers.models.{key}.api",
        )


def _number(section: Mapping[str, Any], name: str, default: Any, param: str, kind=float):
    """Read a numeric setting, rejecting null, booleans and non-numeric text."""
    raw = section.get(name, default)
    if isinstance(raw, bool):
        raise ConfigurationError(f"{param} must be a number, got {raw!r}", param=param)
    try:
        return kind(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{param} must be a number, got {raw!r}", param=param)


def build_descriptors(
    models: Mapping[str, Dict[str, Any]],
    env: Optional[Mapping[str, str]] = None,
) -> List[ProviderDescriptor]:
    """
    Turn the ``providers.models`` mapping into descriptors.

    Disabled providers are skipped. API keys are resolved from ``env``.

    Raises:
        ConfigurationError: On an unknown API family, a missing baseURL or
            model, or a missing credential
    """
    env = os.environ if env is None else env
    descriptors = []

    for key, raw in models.items():
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Provider '{key}' must be an object", param=f"providers.models.{key}")

        if not raw.get("enabled", True):
            continue

        api = _parse_api_family(key, raw.get("api", key))
        base_url = raw.get("baseURL") or ""
        model = raw.get("model") or ""

        if api != ApiFamily.STUB:
            if not base_url:
                raise ConfigurationError(f"Provider '{key}' is missing baseURL", param=f"providers.models.{key}.baseURL")
            if not model:
                raise ConfigurationError(f"Provider '{key}' is missing model", param=f"providers.models.{key}.model")

        api_key = None
        key_env = raw.get("apiKeyEnv")
        if key_env:
            api_key = env.get(key_env) or None
        if api.requires_api_key and not api_key:
            raise ConfigurationError(
                f"Provider '{key}' requires an API key in ${key_env or '<apiKeyEnv not set>'}",
                param=f"providers.models.{key}.apiKeyEnv",
            )

        prefix = f"providers.models.{key}"
        options = raw.get("options") or {}
        if not isinstance(options, dict):
            raise ConfigurationError(f"{prefix}.options must be an object", param=f"{prefix}.options")

        descriptors.append(ProviderDescriptor(
            key=key,
            name=raw.get("name") or key,
            api=api,
            base_url=base_url,
            model=model,
            max_tokens=_number(raw, "maxTokens", 4000, f"{prefix}.maxTokens", int),
            temperature=_number(raw, "temperature", 0.7, f"{prefix}.temperature"),
            cost_per_token=_number(raw, "costPerToken", 0, f"{prefix}.costPerToken"),
            api_key=api_key,
            timeout=_number(raw, "timeoutSeconds", 30, f"{prefix}.timeoutSeconds"),
            options=dict(options),
        ))

    return descriptors


def parse_settings(data: Dict[str, Any], env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build validated Settings from a parsed settings document.

    Raises:
        ConfigurationError: If the document is unusable
    """
    env = os.environ if env is None else env

    providers_section = data.get("providers") or {}
    descriptors = build_descriptors(providers_section.get("models") or {}, env)
    if not descriptors:
        raise ConfigurationError("No enabled providers configured", param="providers.models")

    primary = env.get("TARS_PRIMARY_PROVIDER") or providers_section.get("primary")
    if env.get("TARS_FALLBACK_PROVIDERS") is not None:
        fallbacks = [k.strip() for k in env["TARS_FALLBACK_PROVIDERS"].split(",") if k.strip()]
    else:
        fallbacks = list(providers_section.get("fallback") or [])

    enabled = {d.key for d in descriptors}
    if not primary or primary not in enabled:
        raise ConfigurationError(
            f"Primary provider '{primary}' is not a configured, enabled provider",
            param="providers.primary",
        )
    for key in fallbacks:
        if key not in enabled:
            raise ConfigurationError(
                f"Fallback provider '{key}' is not a configured, enabled provider",
                param="providers.fallback",
            )

    health_section = data.get("health") or {}
    routing_section = data.get("routing") or {}
    api_section = data.get("api") or {}

    health = HealthSettings(
        max_error_count=_number(health_section, "maxErrorCount", 5, "health.maxErrorCount", int),
        staleness_seconds=_number(health_section, "stalenessSeconds", 300, "health.stalenessSeconds"),
        probe_interval=_number(health_section, "probeIntervalSeconds", 120, "health.probeIntervalSeconds"),
        probe_timeout=_number(health_section, "probeTimeoutSeconds", 10, "health.probeTimeoutSeconds"),
    )
    routing = RoutingSettings(
        overall_timeout=_number(routing_section, "overallTimeoutSeconds", 90, "routing.overallTimeoutSeconds"),
        prefer_hinted_provider=bool(routing_section.get("preferHintedProvider", False)),
    )
    if routing.overall_timeout <= 0:
        raise ConfigurationError("overallTimeoutSeconds must be positive", param="routing.overallTimeoutSeconds")

    if env.get("PORT"):
        port = _number(env, "PORT", None, "PORT", int)
    else:
        port = _number(api_section, "port", 5000, "api.port", int)

    rate_limit = _number(api_section, "rateLimitPerMinute", 100, "api.rateLimitPerMinute", int)
    if rate_limit < 0:
        raise ConfigurationError("rateLimitPerMinute must be 0 (off) or positive", param="api.rateLimitPerMinute")

    return Settings(
        primary=primary,
        fallbacks=fallbacks,
        providers=descriptors,
        health=health,
        routing=routing,
        port=port,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        rate_limit_per_minute=rate_limit,
    )


def load_settings(
    path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Load and validate settings.

    Args:
        path: Settings file; defaults to $TARS_CONFIG, then config/settings.json
        env: Environment mapping; defaults to os.environ

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    env = os.environ if env is None else env
    config_path = Path(path or env.get("TARS_CONFIG") or DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        raise ConfigurationError(f"Missing settings file: {config_path}", param="TARS_CONFIG")

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}", param="TARS_CONFIG")

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a JSON object", param="TARS_CONFIG")

    return parse_settings(data, env)
