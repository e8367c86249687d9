"""Property tests for the Sample Aggregator."""

import math

from hypothesis import given, settings
from hypothesis import strategies as st

from rollback_copilot.aggregator import SampleAggregator, compute_stats, p95_index
from rollback_copilot.models import Observation

from .strategies import observation_lists


def _close_or_below(a: float, b: float) -> bool:
    return a <= b or math.isclose(a, b, rel_tol=1e-9, abs_tol=1e-9)


@given(observations=observation_lists(), capacity=st.integers(min_value=1, max_value=150))
@settings(max_examples=200)
def test_window_keeps_the_most_recent(observations: list[Observation], capacity: int):
    agg = SampleAggregator(capacity, slow_threshold_ms=None)
    accepted = agg.record_many(observations)

    assert accepted == len(observations)
    assert len(agg) == min(len(observations), capacity)
    assert agg.totals().total_observations == len(observations)

    kept = list(reversed(agg.recent(capacity)))
    assert kept == observations[-capacity:]


@given(observations=observation_lists(min_size=1))
@settings(max_examples=300)
def test_stats_are_ordered(observations: list[Observation]):
    stats = compute_stats(observations)
    assert stats.sample_count == len(observations)
    assert stats.min_latency_ms <= stats.p95_latency_ms <= stats.max_latency_ms
    assert _close_or_below(stats.min_latency_ms, stats.avg_latency_ms)
    assert _close_or_below(stats.avg_latency_ms, stats.max_latency_ms)
    assert 0.0 <= stats.error_rate <= 1.0


@given(observations=observation_lists(min_size=1))
@settings(max_examples=300)
def test_p95_is_a_sample(observations: list[Observation]):
    stats = compute_stats(observations)
    ordered = sorted(o.latency_ms for o in observations)
    assert stats.p95_latency_ms == ordered[p95_index(len(ordered))]


@given(n=st.integers(min_value=1, max_value=10_000))
def test_p95_index_in_range(n: int):
    assert 0 <= p95_index(n) < n


@given(observations=observation_lists(min_size=1))
@settings(max_examples=100)
def test_order_of_equal_windows_does_not_matter(observations: list[Observation]):
    """Statistics depend on the multiset of samples, not arrival order."""
    forward = compute_stats(observations)
    backward = compute_stats(list(reversed(observations)))
    assert forward.p95_latency_ms == backward.p95_latency_ms
    assert forward.max_latency_ms == backward.max_latency_ms
    assert forward.failure_count == backward.failure_count
