"""Observation and statistics models for the Sample Aggregator.

Date/Time: All timestamps use `whenever` library (UTC-first, Rust-backed).
"""

from pydantic import BaseModel, ConfigDict, Field
from whenever import Instant  # noqa: TC002 - Pydantic needs runtime imports


class Observation(BaseModel):
    """One latency/outcome data point recorded at the ingestion boundary.

    latency_ms is deliberately not range-checked here: the aggregator owns
    that rule and rejects bad samples with InvalidObservation.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: Instant = Field(description="When the request/operation completed (UTC)")
    latency_ms: float = Field(description="Observed latency in milliseconds")
    succeeded: bool = Field(default=True, description="False for errors and throttled requests")
    cost_units: float | None = Field(
        default=None,
        ge=0,
        description="Optional request cost (e.g. RU equivalent) for the operation",
    )
    operation: str | None = Field(default=None, description="Name of the operation measured")
    status_code: int | None = Field(default=None, description="Response status code, if any")


class StatsSnapshot(BaseModel):
    """Immutable reduction of a window at one instant.

    Cost fields are None when no observation in the window carried a cost.
    """

    model_config = ConfigDict(frozen=True)

    sample_count: int = Field(default=0, ge=0)
    avg_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    max_latency_ms: float = 0.0
    min_latency_ms: float = 0.0
    error_rate: float = Field(default=0.0, ge=0, le=1)
    failure_count: int = Field(default=0, ge=0)
    avg_cost_units: float | None = None
    max_cost_units: float | None = None
    total_cost_units: float | None = None
    taken_at: Instant | None = None

    @property
    def is_empty(self) -> bool:
        return self.sample_count == 0


class AggregatorTotals(BaseModel):
    """All-time counters that survive window eviction."""

    model_config = ConfigDict(frozen=True)

    total_observations: int = 0
    total_failures: int = 0
    total_cost_units: float = 0.0
