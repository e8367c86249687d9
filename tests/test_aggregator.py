"""Unit tests for the Sample Aggregator."""

import logging
import math
import threading

import pytest
from whenever import TimeDelta

from rollback_copilot.aggregator import SampleAggregator, compute_stats, p95_index
from rollback_copilot.errors import InvalidObservation
from rollback_copilot.models import Observation

from .fakes import T0, observations


class TestWindow:
    def test_sample_count_below_capacity(self):
        agg = SampleAggregator(capacity=100)
        agg.record_many(observations([50.0] * 40))
        assert agg.snapshot().sample_count == 40

    def test_retains_most_recent_at_capacity(self):
        agg = SampleAggregator(capacity=100)
        agg.record_many(observations([float(i) for i in range(150)]))

        snap = agg.snapshot()
        assert snap.sample_count == 100
        assert snap.min_latency_ms == 50.0
        assert snap.max_latency_ms == 149.0

    def test_empty_snapshot(self):
        snap = SampleAggregator().snapshot()
        assert snap.sample_count == 0
        assert snap.is_empty
        assert snap.avg_cost_units is None

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            SampleAggregator(capacity=0)


class TestPercentile:
    def test_p95_index_of_hundred(self):
        assert p95_index(100) == 95

    def test_p95_on_ten_to_thousand(self):
        """Sorted index floor(100 * 0.95) = 95 of [10, 20, ..., 1000] is 960."""
        agg = SampleAggregator(capacity=100)
        agg.record_many(observations([float(v) for v in range(10, 1001, 10)]))
        assert agg.snapshot().p95_latency_ms == 960.0

    def test_p95_of_single_sample(self):
        assert p95_index(1) == 0
        assert compute_stats(observations([42.0])).p95_latency_ms == 42.0

    def test_p95_independent_of_insertion_order(self):
        values = [float(v) for v in range(10, 1001, 10)]
        shuffled = values[50:] + values[:50]
        assert (
            compute_stats(observations(shuffled)).p95_latency_ms
            == compute_stats(observations(values)).p95_latency_ms
        )


class TestStats:
    def test_average_min_max(self):
        snap = compute_stats(observations([10.0, 20.0, 30.0, 40.0]))
        assert snap.avg_latency_ms == 25.0
        assert snap.min_latency_ms == 10.0
        assert snap.max_latency_ms == 40.0

    def test_error_rate(self):
        obs = observations([10.0] * 8) + observations(
            [10.0] * 2, start=T0 + TimeDelta(seconds=10), succeeded=False
        )
        snap = compute_stats(obs)
        assert snap.error_rate == pytest.approx(0.2)
        assert snap.failure_count == 2

    def test_cost_only_over_observations_that_carry_one(self):
        obs = [
            Observation(timestamp=T0, latency_ms=10.0, cost_units=2.0),
            Observation(timestamp=T0, latency_ms=10.0, cost_units=4.0),
            Observation(timestamp=T0, latency_ms=10.0),
        ]
        snap = compute_stats(obs)
        assert snap.avg_cost_units == 3.0
        assert snap.max_cost_units == 4.0
        assert snap.total_cost_units == 6.0


class TestValidation:
    def test_negative_latency_rejected(self):
        agg = SampleAggregator()
        with pytest.raises(InvalidObservation):
            agg.record(Observation(timestamp=T0, latency_ms=-1.0))
        assert len(agg) == 0

    @pytest.mark.parametrize("latency", [math.nan, math.inf])
    def test_non_finite_latency_rejected(self, latency):
        with pytest.raises(InvalidObservation):
            SampleAggregator().record(Observation(timestamp=T0, latency_ms=latency))

    def test_out_of_order_rejected(self):
        agg = SampleAggregator()
        agg.record(Observation(timestamp=T0, latency_ms=10.0))
        with pytest.raises(InvalidObservation, match="earlier"):
            agg.record(Observation(timestamp=T0 - TimeDelta(seconds=1), latency_ms=10.0))
        assert len(agg) == 1

    def test_equal_timestamps_accepted(self):
        agg = SampleAggregator()
        agg.record(Observation(timestamp=T0, latency_ms=10.0))
        agg.record(Observation(timestamp=T0, latency_ms=20.0))
        assert len(agg) == 2

    def test_invalid_observation_is_a_value_error(self):
        with pytest.raises(ValueError):
            SampleAggregator().record(Observation(timestamp=T0, latency_ms=-5.0))

    def test_record_many_skips_invalid(self):
        agg = SampleAggregator()
        obs = observations([10.0, -1.0, 30.0])
        assert agg.record_many(obs) == 2
        assert agg.snapshot().avg_latency_ms == 20.0


class TestRecentTotalsReset:
    def test_recent_newest_first(self):
        agg = SampleAggregator()
        agg.record_many(observations([1.0, 2.0, 3.0, 4.0]))
        assert [o.latency_ms for o in agg.recent(2)] == [4.0, 3.0]

    def test_totals_survive_eviction(self):
        agg = SampleAggregator(capacity=10)
        obs = [
            Observation(
                timestamp=T0 + TimeDelta(seconds=i),
                latency_ms=10.0,
                succeeded=i % 5 != 0,
                cost_units=1.5,
            )
            for i in range(25)
        ]
        agg.record_many(obs)

        totals = agg.totals()
        assert len(agg) == 10
        assert totals.total_observations == 25
        assert totals.total_failures == 5
        assert totals.total_cost_units == pytest.approx(37.5)

    def test_reset_clears_window_and_order(self):
        agg = SampleAggregator()
        agg.record(Observation(timestamp=T0, latency_ms=10.0))
        agg.reset()

        assert len(agg) == 0
        assert agg.last_timestamp is None
        assert agg.totals().total_observations == 0
        # Earlier timestamps are fine again after a reset
        agg.record(Observation(timestamp=T0 - TimeDelta(hours=1), latency_ms=10.0))


def test_slow_observation_logged(caplog):
    agg = SampleAggregator(slow_threshold_ms=500)
    with caplog.at_level(logging.WARNING, logger="rollback_copilot.aggregator"):
        agg.record(Observation(timestamp=T0, latency_ms=750.0, operation="GET /api/products"))
    assert "Slow observation" in caplog.text
    assert "GET /api/products" in caplog.text


def test_concurrent_record_and_snapshot():
    agg = SampleAggregator(capacity=100)
    obs = observations([10.0] * 2000, step_ms=0)
    errors: list[BaseException] = []

    def writer(chunk):
        try:
            for o in chunk:
                agg.record(o)
        except BaseException as e:  # surfaced below
            errors.append(e)

    def reader():
        for _ in range(200):
            assert agg.snapshot().sample_count <= 100

    threads = [threading.Thread(target=writer, args=(obs[i::4],)) for i in range(4)]
    threads.append(threading.Thread(target=reader))
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    assert agg.totals().total_observations == 2000
    assert len(agg) == 100
