"""Unit tests for the Health Classifier and HealthState ordering."""

import pytest

from rollback_copilot.models import HealthState, HealthThresholds, StatsSnapshot
from rollback_copilot.models.state_machine import classify, describe


def _snap(avg: float, p95: float, *, n: int = 100, error_rate: float = 0.0) -> StatsSnapshot:
    return StatsSnapshot(
        sample_count=n,
        avg_latency_ms=avg,
        p95_latency_ms=p95,
        max_latency_ms=max(avg, p95),
        min_latency_ms=min(avg, p95),
        error_rate=error_rate,
    )


class TestClassify:
    def test_empty_is_unknown(self):
        assert classify(StatsSnapshot()) == HealthState.UNKNOWN

    def test_healthy(self):
        assert classify(_snap(50, 80)) == HealthState.HEALTHY

    def test_high_p95_is_degraded(self):
        assert classify(_snap(400, 2500)) == HealthState.DEGRADED

    def test_high_average_is_unhealthy(self):
        assert classify(_snap(1500, 1800)) == HealthState.UNHEALTHY

    def test_average_dominates_p95(self):
        assert classify(_snap(5000, 9000)) == HealthState.UNHEALTHY

    def test_thresholds_are_strict(self):
        assert classify(_snap(1000, 2000)) == HealthState.HEALTHY

    def test_custom_thresholds(self):
        thresholds = HealthThresholds(unhealthy_avg_ms=100, degraded_p95_ms=150)
        assert classify(_snap(120, 130), thresholds) == HealthState.UNHEALTHY
        assert classify(_snap(90, 160), thresholds) == HealthState.DEGRADED

    def test_error_rate_ignored_by_default(self):
        assert classify(_snap(50, 80, error_rate=0.9)) == HealthState.HEALTHY

    def test_error_rate_gates(self):
        thresholds = HealthThresholds(unhealthy_error_rate=0.2, degraded_error_rate=0.05)
        assert classify(_snap(50, 80, error_rate=0.25), thresholds) == HealthState.UNHEALTHY
        assert classify(_snap(50, 80, error_rate=0.05), thresholds) == HealthState.DEGRADED
        assert classify(_snap(50, 80, error_rate=0.01), thresholds) == HealthState.HEALTHY


class TestDescribe:
    def test_unknown_message(self):
        assert describe(StatsSnapshot()).message == "No response time data available yet"

    def test_unhealthy_message(self):
        report = describe(_snap(1234, 1500))
        assert report.state == HealthState.UNHEALTHY
        assert report.message == "Average response time is too high: 1234.00ms"

    def test_degraded_message(self):
        assert describe(_snap(100, 2100.5)).message == (
            "95th percentile response time is high: 2100.50ms"
        )

    def test_healthy_message(self):
        assert describe(_snap(50, 80)).message == "Performance is good. Avg: 50.00ms, P95: 80.00ms"

    def test_error_rate_message(self):
        thresholds = HealthThresholds(unhealthy_error_rate=0.2)
        assert "25.0%" in describe(_snap(50, 80, error_rate=0.25), thresholds).message


class TestHealthStateOrder:
    def test_severity_order(self):
        assert HealthState.UNHEALTHY.is_worse_than(HealthState.DEGRADED)
        assert HealthState.DEGRADED.is_worse_than(HealthState.HEALTHY)
        assert not HealthState.HEALTHY.is_worse_than(HealthState.DEGRADED)

    def test_unknown_is_not_comparable(self):
        assert HealthState.UNKNOWN.severity is None
        with pytest.raises(ValueError):
            HealthState.UNKNOWN.is_worse_than(HealthState.HEALTHY)
        with pytest.raises(ValueError):
            HealthState.HEALTHY.is_worse_than(HealthState.UNKNOWN)


def test_degraded_error_rate_cannot_exceed_unhealthy():
    with pytest.raises(ValueError):
        HealthThresholds(unhealthy_error_rate=0.05, degraded_error_rate=0.2)
