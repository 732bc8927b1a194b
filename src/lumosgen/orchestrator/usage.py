"""Usage, cost and health aggregation over provider chain attempts.

The monitor only observes: the provider chain reports every attempt to it,
and nothing in the monitor feeds back into routing or fallback decisions.
"""

from __future__ import annotations

import copy
import json
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Any

from lumosgen.orchestrator.backend.base import GenerationResult
from lumosgen.orchestrator.pricing import estimate_cost_usd

logger = logging.getLogger(__name__)

RESPONSE_TIME_SAMPLES = 100
DAILY_RETENTION_DAYS = 30


class HealthStatus(str, Enum):
    """Overall provider health derived from the recent error rate."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(slots=True)
class TokenTotals:
    input: int = 0
    output: int = 0
    total: int = 0

    def add(self, result: GenerationResult) -> None:
        self.input += result.prompt_tokens
        self.output += result.completion_tokens
        self.total += result.total_tokens


@dataclass(slots=True)
class DailyUsage:
    """Per-day slice of one provider's usage."""

    requests: int = 0
    errors: int = 0
    tokens: TokenTotals = field(default_factory=TokenTotals)
    cost: float = 0.0


@dataclass(slots=True)
class ProviderUsageStats:
    """Aggregated usage for one provider."""

    provider: str
    requests: int = 0
    errors: int = 0
    tokens: TokenTotals = field(default_factory=TokenTotals)
    cost: float = 0.0
    last_used: datetime | None = None
    average_response_time: float = 0.0
    success_rate: float = 1.0
    cost_per_request: float = 0.0
    cost_per_token: float = 0.0
    daily_usage: dict[str, DailyUsage] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "requests": self.requests,
            "errors": self.errors,
            "tokens": _tokens_dict(self.tokens),
            "cost": self.cost,
            "lastUsed": self.last_used.isoformat() if self.last_used else None,
            "averageResponseTime": self.average_response_time,
            "successRate": self.success_rate,
            "costPerRequest": self.cost_per_request,
            "costPerToken": self.cost_per_token,
            "dailyUsage": {
                day: {
                    "requests": usage.requests,
                    "errors": usage.errors,
                    "tokens": _tokens_dict(usage.tokens),
                    "cost": usage.cost,
                }
                for day, usage in sorted(self.daily_usage.items())
            },
        }


@dataclass(slots=True, frozen=True)
class CostAlert:
    """Cost threshold crossing, triggered at most once per kind and threshold."""

    kind: str
    threshold: float
    current: float
    timestamp: datetime


@dataclass(slots=True, frozen=True)
class HealthReport:
    """Health status over the most recent chain attempts."""

    status: HealthStatus
    error_rate: float
    observed_attempts: int
    errors_by_provider: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "errorRate": self.error_rate,
            "observedAttempts": self.observed_attempts,
            "errorsByProvider": dict(sorted(self.errors_by_provider.items())),
        }


class UsageMonitor:
    """Aggregates requests, tokens, cost and errors per provider."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        health_window: int = 20,
        degraded_error_rate: float = 0.2,
        unhealthy_error_rate: float = 0.5,
        daily_cost_alert_usd: float = 10.0,
        total_cost_alert_usd: float = 100.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if health_window <= 0:
            raise ValueError("health_window must be > 0")
        self.health_window = health_window
        self.degraded_error_rate = degraded_error_rate
        self.unhealthy_error_rate = unhealthy_error_rate
        self.daily_cost_alert_usd = daily_cost_alert_usd
        self.total_cost_alert_usd = total_cost_alert_usd
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._stats: dict[str, ProviderUsageStats] = {}
        self._response_times: dict[str, deque[float]] = {}
        self._recent: deque[tuple[str, bool]] = deque(maxlen=health_window)
        self._alerts: list[CostAlert] = []

    def record_success(
        self,
        provider: str,
        result: GenerationResult,
        response_time: float,
    ) -> None:
        """Record one successful generation call."""

        stats, daily = self._touch(provider, response_time)
        cost = _result_cost(result)
        stats.tokens.add(result)
        stats.cost += cost
        daily.tokens.add(result)
        daily.cost += cost
        self._recent.append((provider, False))
        self._update_derived(stats)
        self._check_cost_alerts()

    def record_failure(
        self,
        provider: str,
        error: BaseException,
        response_time: float,
    ) -> None:
        """Record one failed generation call."""

        stats, daily = self._touch(provider, response_time)
        stats.errors += 1
        daily.errors += 1
        self._recent.append((provider, True))
        self._update_derived(stats)
        logger.debug("Recorded %s failure: %s", provider, error)

    def get_usage_stats(self) -> dict[str, ProviderUsageStats]:
        """Return a copy of per-provider stats keyed by provider name."""

        return {name: copy.deepcopy(stats) for name, stats in self._stats.items()}

    def get_total_cost(self) -> float:
        return sum(stats.cost for stats in self._stats.values())

    def get_daily_cost(self, day: date | None = None) -> float:
        key = (day or self._clock().date()).isoformat()
        return sum(
            stats.daily_usage[key].cost
            for stats in self._stats.values()
            if key in stats.daily_usage
        )

    def get_cost_alerts(self) -> list[CostAlert]:
        return list(self._alerts)

    def health_check(self) -> HealthReport:
        """Derive health from the error rate over the recent attempt window."""

        observed = len(self._recent)
        errors_by_provider: dict[str, int] = {}
        for provider, failed in self._recent:
            if failed:
                errors_by_provider[provider] = errors_by_provider.get(provider, 0) + 1
        error_rate = sum(errors_by_provider.values()) / observed if observed else 0.0

        if error_rate < self.degraded_error_rate:
            status = HealthStatus.HEALTHY
        elif error_rate < self.unhealthy_error_rate:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY
        return HealthReport(
            status=status,
            error_rate=error_rate,
            observed_attempts=observed,
            errors_by_provider=errors_by_provider,
        )

    def snapshot(self) -> dict[str, Any]:
        """Build the `{timestamp, stats, health, totalCost}` export payload."""

        return {
            "timestamp": self._clock().isoformat(),
            "stats": {name: stats.to_dict() for name, stats in sorted(self._stats.items())},
            "health": self.health_check().to_dict(),
            "totalCost": self.get_total_cost(),
        }

    def export_data(self) -> str:
        return json.dumps(self.snapshot(), indent=2, ensure_ascii=False)

    def reset(self) -> None:
        self._stats.clear()
        self._response_times.clear()
        self._recent.clear()
        self._alerts.clear()

    def _touch(self, provider: str, response_time: float) -> tuple[ProviderUsageStats, DailyUsage]:
        now = self._clock()
        stats = self._stats.setdefault(provider, ProviderUsageStats(provider=provider))
        self._prune_daily(stats, today=now.date())
        daily = stats.daily_usage.setdefault(now.date().isoformat(), DailyUsage())
        stats.requests += 1
        stats.last_used = now
        daily.requests += 1
        times = self._response_times.setdefault(provider, deque(maxlen=RESPONSE_TIME_SAMPLES))
        times.append(response_time)
        return stats, daily

    def _update_derived(self, stats: ProviderUsageStats) -> None:
        times = self._response_times.get(stats.provider)
        if times:
            stats.average_response_time = sum(times) / len(times)
        if stats.requests:
            stats.success_rate = (stats.requests - stats.errors) / stats.requests
            stats.cost_per_request = stats.cost / stats.requests
        if stats.tokens.total:
            stats.cost_per_token = stats.cost / stats.tokens.total

    def _check_cost_alerts(self) -> None:
        daily_cost = self.get_daily_cost()
        if self.daily_cost_alert_usd and daily_cost > self.daily_cost_alert_usd:
            self._trigger_alert("daily", self.daily_cost_alert_usd, daily_cost)
        total_cost = self.get_total_cost()
        if self.total_cost_alert_usd and total_cost > self.total_cost_alert_usd:
            self._trigger_alert("total", self.total_cost_alert_usd, total_cost)

    def _trigger_alert(self, kind: str, threshold: float, current: float) -> None:
        if any(alert.kind == kind and alert.threshold == threshold for alert in self._alerts):
            return
        self._alerts.append(
            CostAlert(kind=kind, threshold=threshold, current=current, timestamp=self._clock()),
        )
        logger.warning(
            "Cost alert: %s usage ($%.2f) exceeded threshold ($%.2f)",
            kind,
            current,
            threshold,
        )

    @staticmethod
    def _prune_daily(stats: ProviderUsageStats, *, today: date) -> None:
        cutoff = (today - timedelta(days=DAILY_RETENTION_DAYS)).isoformat()
        for day in [day for day in stats.daily_usage if day < cutoff]:
            del stats.daily_usage[day]


def _result_cost(result: GenerationResult) -> float:
    if result.cost is not None:
        return result.cost
    estimated = estimate_cost_usd(
        provider=result.provider,
        model=result.model,
        prompt_tokens=result.prompt_tokens,
        completion_tokens=result.completion_tokens,
        at=result.timestamp,
    )
    return estimated or 0.0


def _tokens_dict(tokens: TokenTotals) -> dict[str, int]:
    return {"input": tokens.input, "output": tokens.output, "total": tokens.total}
