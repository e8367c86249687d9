"""Sample Aggregator - sliding window over latency observations.

Maintains a fixed-capacity window of the most recent observations and
reduces it to a StatsSnapshot on demand.

Thread-safe: record() and snapshot() can be called from different threads
(API handlers, the orchestration loop) safely. The lock only guards
insert/evict and the copy taken for reads; statistics are computed on the
copy outside the lock.

Invariants:
- len(window) <= capacity; the oldest observation is evicted first
- insertion order == time order (earlier timestamps are rejected)
"""

import logging
import math
import threading
from collections import deque
from collections.abc import Callable, Iterable, Sequence

from whenever import Instant

from rollback_copilot.errors import InvalidObservation
from rollback_copilot.models import AggregatorTotals, Observation, StatsSnapshot

logger = logging.getLogger(__name__)

P95_QUANTILE = 0.95


def p95_index(sample_count: int) -> int:
    """Index of the p95 element in a sorted list of sample_count values."""
    return min(max(int(sample_count * P95_QUANTILE), 0), sample_count - 1)


def compute_stats(
    observations: Sequence[Observation], taken_at: Instant | None = None
) -> StatsSnapshot:
    """Reduce observations to a StatsSnapshot. Pure; empty input -> empty snapshot."""
    n = len(observations)
    if n == 0:
        return StatsSnapshot(taken_at=taken_at)

    latencies = sorted(o.latency_ms for o in observations)
    failures = sum(1 for o in observations if not o.succeeded)
    costs = [o.cost_units for o in observations if o.cost_units is not None]

    return StatsSnapshot(
        sample_count=n,
        avg_latency_ms=sum(latencies) / n,
        p95_latency_ms=latencies[p95_index(n)],
        max_latency_ms=latencies[-1],
        min_latency_ms=latencies[0],
        error_rate=failures / n,
        failure_count=failures,
        avg_cost_units=sum(costs) / len(costs) if costs else None,
        max_cost_units=max(costs) if costs else None,
        total_cost_units=sum(costs) if costs else None,
        taken_at=taken_at,
    )


class SampleAggregator:
    """Fixed-capacity, thread-safe sliding window of observations.

    Usage:
        aggregator = SampleAggregator(capacity=100)

        # From the ingestion side
        aggregator.record(observation)

        # From the evaluation side
        snapshot = aggregator.snapshot()
    """

    def __init__(
        self,
        capacity: int = 100,
        *,
        name: str = "default",
        slow_threshold_ms: float | None = 500.0,
        clock: Callable[[], Instant] = Instant.now,
    ) -> None:
        if capacity < 1:
            msg = f"capacity must be >= 1, got {capacity}"
            raise ValueError(msg)
        self.capacity = capacity
        self.name = name
        self.slow_threshold_ms = slow_threshold_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._window: deque[Observation] = deque(maxlen=capacity)
        self._last_timestamp: Instant | None = None
        self._total_observations = 0
        self._total_failures = 0
        self._total_cost_units = 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._window)

    @property
    def last_timestamp(self) -> Instant | None:
        """Timestamp of the most recently recorded observation."""
        with self._lock:
            return self._last_timestamp

    def record(self, observation: Observation) -> None:
        """Append an observation, evicting the oldest when at capacity.

        Raises:
            InvalidObservation: latency is negative or not finite, or the
                timestamp is earlier than the last recorded one.
        """
        latency = observation.latency_ms
        if not math.isfinite(latency) or latency < 0:
            raise InvalidObservation(f"latency_ms must be a finite value >= 0, got {latency}")

        with self._lock:
            if self._last_timestamp is not None and observation.timestamp < self._last_timestamp:
                raise InvalidObservation(
                    f"timestamp {observation.timestamp} is earlier than the last "
                    f"recorded sample ({self._last_timestamp})"
                )
            self._window.append(observation)
            self._last_timestamp = observation.timestamp
            self._total_observations += 1
            if not observation.succeeded:
                self._total_failures += 1
            if observation.cost_units is not None:
                self._total_cost_units += observation.cost_units

        if self.slow_threshold_ms is not None and latency > self.slow_threshold_ms:
            logger.warning(
                "Slow observation on %s: %s took %.0fms",
                self.name,
                observation.operation or "request",
                latency,
            )

    def record_many(self, observations: Iterable[Observation]) -> int:
        """Record observations in order, skipping invalid ones. Returns the number accepted."""
        accepted = 0
        for observation in observations:
            try:
                self.record(observation)
            except InvalidObservation as e:
                logger.warning("Rejected observation on %s: %s", self.name, e)
                continue
            accepted += 1
        return accepted

    def snapshot(self) -> StatsSnapshot:
        """Statistics over the current window. Never fails."""
        with self._lock:
            window = list(self._window)
        return compute_stats(window, taken_at=self._clock())

    def recent(self, limit: int = 10) -> list[Observation]:
        """Most recent observations, newest first."""
        if limit <= 0:
            return []
        with self._lock:
            window = list(self._window)
        return window[::-1][:limit]

    def totals(self) -> AggregatorTotals:
        """All-time counters, unaffected by window eviction."""
        with self._lock:
            return AggregatorTotals(
                total_observations=self._total_observations,
                total_failures=self._total_failures,
                total_cost_units=self._total_cost_units,
            )

    def reset(self) -> None:
        """Clear the window and the all-time counters."""
        with self._lock:
            self._window.clear()
            self._last_timestamp = None
            self._total_observations = 0
            self._total_failures = 0
            self._total_cost_units = 0.0
        logger.info("Aggregator %s reset", self.name)
