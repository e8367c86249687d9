"""Health state models.

Health State Gates (first match wins):
- UNKNOWN: no samples yet
- UNHEALTHY: average latency above the unhealthy threshold
- DEGRADED: p95 latency above the degraded threshold
- HEALTHY: otherwise

Healthy < Degraded < Unhealthy is a total order of severity.
Unknown sits outside that order: it is not "better" than Healthy.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from .observations import StatsSnapshot  # noqa: TC001 - Pydantic needs runtime imports


class HealthState(StrEnum):
    UNKNOWN = "unknown"  # No samples recorded yet
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # Tail latency (or error rate) elevated
    UNHEALTHY = "unhealthy"  # Average latency (or error rate) past the hard limit

    @property
    def severity(self) -> int | None:
        """Rank within Healthy < Degraded < Unhealthy; None for UNKNOWN."""
        return _SEVERITY.get(self)

    def is_worse_than(self, other: "HealthState") -> bool:
        """Compare severities. Raises ValueError when either side is UNKNOWN."""
        if self.severity is None or other.severity is None:
            msg = f"{HealthState.UNKNOWN.value!r} has no severity order"
            raise ValueError(msg)
        return self.severity > other.severity


_SEVERITY = {
    HealthState.HEALTHY: 0,
    HealthState.DEGRADED: 1,
    HealthState.UNHEALTHY: 2,
}


class HealthReport(BaseModel):
    """A classified health state with a human-readable explanation."""

    model_config = ConfigDict(frozen=True)

    state: HealthState
    message: str = Field(description="Why the state was chosen, with the key figures")
    snapshot: StatsSnapshot
