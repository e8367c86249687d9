"""Health Classifier - Deterministic health evaluation.

Key Principle: "Rules decide"
This module contains the deterministic rules that map a StatsSnapshot and a
set of HealthThresholds to a HealthState.

Evaluation order (first match wins):
1. No samples                               -> UNKNOWN
2. Average latency above unhealthy_avg_ms   -> UNHEALTHY
3. Error rate at/above unhealthy_error_rate -> UNHEALTHY (optional gate)
4. P95 latency above degraded_p95_ms        -> DEGRADED
5. Error rate at/above degraded_error_rate  -> DEGRADED (optional gate)
6. Otherwise                                -> HEALTHY

INVARIANT: a window whose average breaches unhealthy_avg_ms is always
UNHEALTHY, never merely DEGRADED, whatever its p95.
"""

from .config import HealthThresholds
from .health import HealthReport, HealthState
from .observations import StatsSnapshot


def classify(snapshot: StatsSnapshot, thresholds: HealthThresholds | None = None) -> HealthState:
    """Classify a snapshot. Pure and total over valid snapshots."""
    if thresholds is None:
        thresholds = HealthThresholds()

    if snapshot.sample_count == 0:
        return HealthState.UNKNOWN

    if _is_unhealthy(snapshot, thresholds):
        return HealthState.UNHEALTHY

    if _is_degraded(snapshot, thresholds):
        return HealthState.DEGRADED

    return HealthState.HEALTHY


def describe(snapshot: StatsSnapshot, thresholds: HealthThresholds | None = None) -> HealthReport:
    """Classify a snapshot and explain the result with the figures that drove it."""
    if thresholds is None:
        thresholds = HealthThresholds()

    state = classify(snapshot, thresholds)
    return HealthReport(
        state=state, message=_message(state, snapshot, thresholds), snapshot=snapshot
    )


def _is_unhealthy(snapshot: StatsSnapshot, thresholds: HealthThresholds) -> bool:
    if snapshot.avg_latency_ms > thresholds.unhealthy_avg_ms:
        return True
    return (
        thresholds.unhealthy_error_rate is not None
        and snapshot.error_rate >= thresholds.unhealthy_error_rate
    )


def _is_degraded(snapshot: StatsSnapshot, thresholds: HealthThresholds) -> bool:
    if snapshot.p95_latency_ms > thresholds.degraded_p95_ms:
        return True
    return (
        thresholds.degraded_error_rate is not None
        and snapshot.error_rate >= thresholds.degraded_error_rate
    )


def _message(state: HealthState, snapshot: StatsSnapshot, thresholds: HealthThresholds) -> str:
    if state == HealthState.UNKNOWN:
        return "No response time data available yet"

    avg = snapshot.avg_latency_ms
    p95 = snapshot.p95_latency_ms
    error_pct = snapshot.error_rate * 100

    if state == HealthState.UNHEALTHY:
        if avg > thresholds.unhealthy_avg_ms:
            return f"Average response time is too high: {avg:.2f}ms"
        return f"Critical error rate: {error_pct:.1f}% of requests failed"

    if state == HealthState.DEGRADED:
        if p95 > thresholds.degraded_p95_ms:
            return f"95th percentile response time is high: {p95:.2f}ms"
        return f"Elevated error rate: {error_pct:.1f}% of requests failed"

    return f"Performance is good. Avg: {avg:.2f}ms, P95: {p95:.2f}ms"
