"""Baseline Tracker - the known-good reference the live window is compared to.

A baseline is only ever set by an explicit establish() call. Establishment
requires a minimum number of samples so a handful of lucky requests cannot
become the reference.
"""

import logging
import threading
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict
from whenever import Instant

from rollback_copilot.errors import InsufficientSamples
from rollback_copilot.models import StatsSnapshot

logger = logging.getLogger(__name__)


class Baseline(BaseModel):
    """A captured known-good snapshot."""

    model_config = ConfigDict(frozen=True)

    name: str
    snapshot: StatsSnapshot
    captured_at: Instant


class BaselineTracker:
    """Holds at most one established baseline and measures deviation from it."""

    def __init__(
        self,
        min_samples: int = 20,
        *,
        name: str = "default",
        clock: Callable[[], Instant] = Instant.now,
    ) -> None:
        self.min_samples = min_samples
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._baseline: Baseline | None = None

    @property
    def baseline(self) -> Baseline | None:
        with self._lock:
            return self._baseline

    @property
    def is_established(self) -> bool:
        return self.baseline is not None

    def establish(self, snapshot: StatsSnapshot) -> Baseline:
        """Capture snapshot as the new baseline, replacing any previous one.

        Raises:
            InsufficientSamples: the snapshot has fewer than min_samples samples.
        """
        if snapshot.sample_count < self.min_samples:
            raise InsufficientSamples(snapshot.sample_count, self.min_samples)

        baseline = Baseline(name=self.name, snapshot=snapshot, captured_at=self._clock())
        with self._lock:
            self._baseline = baseline
        logger.info(
            "Baseline %s established: avg=%.2fms p95=%.2fms samples=%d",
            self.name,
            snapshot.avg_latency_ms,
            snapshot.p95_latency_ms,
            snapshot.sample_count,
        )
        return baseline

    def deviation_percent(self, current: StatsSnapshot) -> float | None:
        """Percent change of current average latency vs the baseline average.

        Returns None when no baseline is established, or when the baseline
        average is zero and the ratio is undefined. Negative means faster.
        """
        baseline = self.baseline
        if baseline is None:
            return None
        base_avg = baseline.snapshot.avg_latency_ms
        if base_avg == 0:
            return None
        return (current.avg_latency_ms - base_avg) / base_avg * 100

    def reset(self) -> None:
        """Forget the baseline. The loop may establish a warm-up baseline again."""
        with self._lock:
            self._baseline = None
        logger.info("Baseline %s cleared", self.name)
