"""Pydantic response models for the status API.

These models define the shape of every API response. FastAPI serializes
them automatically; whenever's native Pydantic support handles Instant -> ISO 8601.

Principle: "The API reports, the loop decides"
Handlers read the controller's state. None of them can trigger a rollback.
"""

from pydantic import BaseModel, Field
from whenever import Instant  # noqa: TC002 - Pydantic needs runtime imports

from .health import HealthState  # noqa: TC001
from .observations import AggregatorTotals, Observation, StatsSnapshot  # noqa: TC001
from .remediation import RemediationDecision, RemediationStateSnapshot  # noqa: TC001

# =============================================================================
# GET /health
# =============================================================================


class CheckEntry(BaseModel):
    """One named health check and what it found."""

    name: str
    status: HealthState
    description: str
    data: dict[str, float | int | None] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Health report over the live window."""

    status: HealthState
    timestamp: Instant
    checks: list[CheckEntry] = Field(default_factory=list)


# =============================================================================
# GET /status
# =============================================================================


class StatusResponse(BaseModel):
    """Controller status: loop phase, window, baseline and remediation state."""

    phase: str
    health_state: HealthState
    timestamp: Instant
    snapshot: StatsSnapshot
    totals: AggregatorTotals
    baseline_established: bool
    baseline_captured_at: Instant | None = None
    deviation_percent: float | None = None
    remediation: RemediationStateSnapshot
    cycles_completed: int = 0
    last_decision: RemediationDecision | None = None


# =============================================================================
# GET /decisions
# =============================================================================


class DecisionsResponse(BaseModel):
    """Audit trail of remediation decisions within a time range."""

    start: Instant
    end: Instant
    decisions: list[RemediationDecision] = Field(default_factory=list)


# =============================================================================
# POST /baseline
# =============================================================================


class BaselineResponse(BaseModel):
    """Result of an explicit baseline (re-)establishment."""

    name: str
    captured_at: Instant
    snapshot: StatsSnapshot


# =============================================================================
# /observations
# =============================================================================


class IngestResponse(BaseModel):
    """Result of pushing observations into the window."""

    accepted: int
    rejected: int = 0
    errors: list[str] = Field(default_factory=list)


class RecentObservationsResponse(BaseModel):
    """Most recent observations, newest first."""

    observations: list[Observation] = Field(default_factory=list)
    totals: AggregatorTotals
