from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import allure
import pytest

from lumosgen.orchestrator.backend.base import GenerationResult
from lumosgen.orchestrator.usage import HealthStatus, UsageMonitor

pytestmark = [
    allure.epic("Provider Chain"),
    allure.feature("Usage & Cost"),
]


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def _result(provider: str = "openai", *, cost: float | None = 0.5) -> GenerationResult:
    return GenerationResult(
        content="hello",
        provider=provider,
        model="gpt-4o-mini",
        prompt_tokens=100,
        completion_tokens=50,
        timestamp=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
        cost=cost,
    )


def test_record_success_aggregates_tokens_cost_and_timing() -> None:
    monitor = UsageMonitor()

    monitor.record_success("openai", _result(), 0.2)
    monitor.record_success("openai", _result(), 0.4)

    stats = monitor.get_usage_stats()["openai"]
    assert stats.requests == 2
    assert stats.errors == 0
    assert stats.tokens.input == 200
    assert stats.tokens.output == 100
    assert stats.tokens.total == 300
    assert stats.cost == pytest.approx(1.0)
    assert stats.average_response_time == pytest.approx(0.3)
    assert stats.cost_per_request == pytest.approx(0.5)
    assert stats.success_rate == 1.0
    assert monitor.get_total_cost() == pytest.approx(1.0)


def test_missing_backend_cost_falls_back_to_pricing_table() -> None:
    monitor = UsageMonitor()

    monitor.record_success("openai", _result(cost=None), 0.1)

    expected = 100 / 1_000_000 * 0.15 + 50 / 1_000_000 * 0.60
    assert monitor.get_total_cost() == pytest.approx(expected)


def test_usage_stats_are_copies() -> None:
    monitor = UsageMonitor()
    monitor.record_success("openai", _result(), 0.1)

    monitor.get_usage_stats()["openai"].requests = 99

    assert monitor.get_usage_stats()["openai"].requests == 1


def test_health_check_without_observations_is_healthy() -> None:
    report = UsageMonitor().health_check()

    assert report.status is HealthStatus.HEALTHY
    assert report.observed_attempts == 0
    assert report.error_rate == 0.0


@pytest.mark.parametrize(
    ("failures", "expected"),
    [(1, HealthStatus.HEALTHY), (2, HealthStatus.DEGRADED), (5, HealthStatus.UNHEALTHY)],
)
def test_health_check_thresholds(failures: int, expected: HealthStatus) -> None:
    monitor = UsageMonitor(health_window=10)
    for _ in range(10 - failures):
        monitor.record_success("mock", _result("mock", cost=0.0), 0.01)
    for _ in range(failures):
        monitor.record_failure("deepseek", RuntimeError("down"), 0.01)

    report = monitor.health_check()

    assert report.status is expected
    assert report.errors_by_provider == {"deepseek": failures}


def test_health_window_forgets_old_failures() -> None:
    monitor = UsageMonitor(health_window=4)
    for _ in range(4):
        monitor.record_failure("deepseek", RuntimeError("down"), 0.01)
    for _ in range(4):
        monitor.record_success("mock", _result("mock", cost=0.0), 0.01)

    assert monitor.health_check().status is HealthStatus.HEALTHY
    assert monitor.get_usage_stats()["deepseek"].errors == 4


def test_cost_alerts_trigger_once_per_threshold() -> None:
    monitor = UsageMonitor(daily_cost_alert_usd=1.0, total_cost_alert_usd=100.0)

    for _ in range(5):
        monitor.record_success("openai", _result(cost=0.6), 0.1)

    alerts = monitor.get_cost_alerts()
    assert [alert.kind for alert in alerts] == ["daily"]
    assert alerts[0].threshold == 1.0
    assert alerts[0].current == pytest.approx(1.2)


def test_daily_cost_is_bucketed_by_date_and_old_days_pruned() -> None:
    clock = _Clock(datetime(2026, 3, 1, 9, 0, tzinfo=UTC))
    monitor = UsageMonitor(clock=clock)
    monitor.record_success("openai", _result(cost=1.0), 0.1)

    clock.now += timedelta(days=1)
    monitor.record_success("openai", _result(cost=2.0), 0.1)
    assert monitor.get_daily_cost() == pytest.approx(2.0)
    assert monitor.get_daily_cost(datetime(2026, 3, 1, tzinfo=UTC).date()) == pytest.approx(1.0)

    clock.now += timedelta(days=40)
    monitor.record_success("openai", _result(cost=0.5), 0.1)
    assert sorted(monitor.get_usage_stats()["openai"].daily_usage) == ["2026-04-11"]
    assert monitor.get_total_cost() == pytest.approx(3.5)


def test_export_data_snapshot_shape() -> None:
    monitor = UsageMonitor(clock=_Clock(datetime(2026, 3, 1, 9, 0, tzinfo=UTC)))
    monitor.record_success("openai", _result(), 0.1)
    monitor.record_failure("deepseek", RuntimeError("down"), 0.2)

    exported = json.loads(monitor.export_data())

    assert set(exported) == {"timestamp", "stats", "health", "totalCost"}
    assert exported["timestamp"] == "2026-03-01T09:00:00+00:00"
    assert exported["stats"]["openai"]["tokens"] == {"input": 100, "output": 50, "total": 150}
    assert exported["stats"]["deepseek"]["errors"] == 1
    assert exported["health"]["status"] == "unhealthy"
    assert exported["totalCost"] == pytest.approx(0.5)


def test_reset_clears_everything() -> None:
    monitor = UsageMonitor()
    monitor.record_failure("deepseek", RuntimeError("down"), 0.2)

    monitor.reset()

    assert monitor.get_usage_stats() == {}
    assert monitor.health_check().observed_attempts == 0
