"""Runtime configuration for providers, usage monitoring and context selection."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

SUPPORTED_PROVIDERS = ("deepseek", "openai", "mock")
DEFAULT_PROVIDER_ORDER = ("deepseek", "openai", "mock")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True)
class ProviderSettings:
    """Connection settings for one OpenAI-compatible backend."""

    name: str
    endpoint: str
    model: str
    api_key: str = ""
    enabled: bool = True

    @property
    def configured(self) -> bool:
        return self.enabled and bool(self.api_key.strip())


@dataclass(slots=True)
class ChainSettings:
    """Provider chain composition and per-request limits."""

    provider_order: tuple[str, ...] = DEFAULT_PROVIDER_ORDER
    request_timeout_seconds: float = 60.0
    mock_delay_seconds: float = 0.0
    deepseek: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(
            name="deepseek",
            endpoint="https://api.deepseek.com/v1",
            model="deepseek-chat",
        ),
    )
    openai: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(
            name="openai",
            endpoint="https://api.openai.com/v1",
            model="gpt-4o-mini",
        ),
    )

    def provider(self, name: str) -> ProviderSettings | None:
        """Return settings for a network provider, None for `mock`."""

        if name == "deepseek":
            return self.deepseek
        if name == "openai":
            return self.openai
        return None


@dataclass(slots=True)
class MonitorSettings:
    """Usage monitor health thresholds and cost alerts."""

    health_window: int = 20
    degraded_error_rate: float = 0.2
    unhealthy_error_rate: float = 0.5
    daily_cost_alert_usd: float = 10.0
    total_cost_alert_usd: float = 100.0


@dataclass(slots=True)
class ContextSettings:
    """Context selection overrides."""

    max_tokens: int | None = None


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    chain: ChainSettings = field(default_factory=ChainSettings)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)
    context: ContextSettings = field(default_factory=ContextSettings)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            chain=ChainSettings(
                provider_order=_collect_provider_order(),
                request_timeout_seconds=float(
                    os.getenv("LUMOSGEN_REQUEST_TIMEOUT_SECONDS", "60"),
                ),
                mock_delay_seconds=float(os.getenv("LUMOSGEN_MOCK_DELAY_SECONDS", "0")),
                deepseek=ProviderSettings(
                    name="deepseek",
                    endpoint=os.getenv("LUMOSGEN_DEEPSEEK_ENDPOINT", "https://api.deepseek.com/v1"),
                    model=os.getenv("LUMOSGEN_DEEPSEEK_MODEL", "deepseek-chat"),
                    api_key=os.getenv("LUMOSGEN_DEEPSEEK_API_KEY", ""),
                    enabled=_env_bool("LUMOSGEN_DEEPSEEK_ENABLED", default=True),
                ),
                openai=ProviderSettings(
                    name="openai",
                    endpoint=os.getenv("LUMOSGEN_OPENAI_ENDPOINT", "https://api.openai.com/v1"),
                    model=os.getenv("LUMOSGEN_OPENAI_MODEL", "gpt-4o-mini"),
                    api_key=os.getenv("LUMOSGEN_OPENAI_API_KEY", ""),
                    enabled=_env_bool("LUMOSGEN_OPENAI_ENABLED", default=True),
                ),
            ),
            monitor=MonitorSettings(
                health_window=int(os.getenv("LUMOSGEN_HEALTH_WINDOW", "20")),
                degraded_error_rate=float(os.getenv("LUMOSGEN_DEGRADED_ERROR_RATE", "0.2")),
                unhealthy_error_rate=float(os.getenv("LUMOSGEN_UNHEALTHY_ERROR_RATE", "0.5")),
                daily_cost_alert_usd=float(os.getenv("LUMOSGEN_DAILY_COST_ALERT_USD", "10")),
                total_cost_alert_usd=float(os.getenv("LUMOSGEN_TOTAL_COST_ALERT_USD", "100")),
            ),
            context=ContextSettings(
                max_tokens=_env_optional_int("LUMOSGEN_CONTEXT_MAX_TOKENS"),
            ),
            log_level=os.getenv("LUMOSGEN_LOG_LEVEL", "WARNING").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error if any value is out of range."""

        if not self.chain.provider_order:
            raise ValueError("LUMOSGEN_PROVIDER_ORDER must name at least one provider.")
        for name in self.chain.provider_order:
            if name not in SUPPORTED_PROVIDERS:
                raise ValueError(
                    f"Unsupported provider in LUMOSGEN_PROVIDER_ORDER: {name!r}. "
                    f"Use one of {SUPPORTED_PROVIDERS}.",
                )
        if self.chain.request_timeout_seconds <= 0:
            raise ValueError("LUMOSGEN_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.chain.mock_delay_seconds < 0:
            raise ValueError("LUMOSGEN_MOCK_DELAY_SECONDS must be >= 0.")
        for provider in (self.chain.deepseek, self.chain.openai):
            _validate_endpoint(provider)
            if not provider.model.strip():
                raise ValueError(f"Empty model id for provider={provider.name!r}")
        if self.monitor.health_window <= 0:
            raise ValueError("LUMOSGEN_HEALTH_WINDOW must be a positive integer.")
        if not 0 < self.monitor.degraded_error_rate <= self.monitor.unhealthy_error_rate <= 1:
            raise ValueError(
                "Error-rate thresholds must satisfy "
                "0 < LUMOSGEN_DEGRADED_ERROR_RATE <= LUMOSGEN_UNHEALTHY_ERROR_RATE <= 1.",
            )
        if self.monitor.daily_cost_alert_usd < 0 or self.monitor.total_cost_alert_usd < 0:
            raise ValueError("Cost alert thresholds must be >= 0.")
        if self.context.max_tokens is not None and self.context.max_tokens <= 0:
            raise ValueError("LUMOSGEN_CONTEXT_MAX_TOKENS must be a positive integer.")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid LUMOSGEN_LOG_LEVEL: {self.log_level!r}")

    def active_providers(self) -> tuple[str, ...]:
        """Return provider names that will form the chain, mock always last."""

        active: list[str] = []
        for name in self.chain.provider_order:
            if name == "mock":
                continue
            provider = self.chain.provider(name)
            if provider is not None and provider.configured:
                active.append(name)
        active.append("mock")
        return tuple(active)


def _collect_provider_order() -> tuple[str, ...]:
    raw = os.getenv("LUMOSGEN_PROVIDER_ORDER", "").strip()
    if not raw:
        return DEFAULT_PROVIDER_ORDER
    deduped: list[str] = []
    for part in raw.split(","):
        name = part.strip().lower()
        if name and name not in deduped:
            deduped.append(name)
    return tuple(deduped)


def _validate_endpoint(provider: ProviderSettings) -> None:
    parsed = urlparse(provider.endpoint)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid endpoint for provider={provider.name!r}: "
            f"{provider.endpoint!r}. Expected an absolute http(s) URL.",
        )


def _env_optional_int(name: str) -> int | None:
    value = os.getenv(name, "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
