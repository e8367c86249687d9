"""Remediation decision, state and outcome models.

Key Principle: "Rules decide"
Every RemediationDecision is produced by the deterministic decision table in
rollback_copilot.policy and appended to the decision log, whatever the action.

Date/Time: All timestamps use `whenever` library (UTC-first, Rust-backed).
"""

from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from whenever import Instant  # noqa: TC002 - Pydantic needs runtime imports

from rollback_copilot.errors import RollbackFailed

from .deployments import DeploymentEvent  # noqa: TC001
from .health import HealthState  # noqa: TC001
from .observations import StatsSnapshot  # noqa: TC001


def _new_id() -> str:
    return str(uuid4())


class RemediationAction(StrEnum):
    NO_ACTION = "no_action"
    WARN = "warn"  # Notify humans, do not touch the deployment
    ROLLBACK = "rollback"  # Swap back to the previous slot


class RemediationDecision(BaseModel):
    """One evaluation cycle's output. Immutable audit record."""

    model_config = ConfigDict(frozen=True)

    decision_id: str = Field(default_factory=_new_id)
    timestamp: Instant
    health_state: HealthState
    deviation_percent: float | None = Field(
        default=None, description="Live vs baseline average latency; None when no baseline"
    )
    correlated_event: DeploymentEvent | None = None
    action: RemediationAction
    reason: str
    snapshot: StatsSnapshot | None = Field(
        default=None, description="Statistics the decision was made on"
    )


class RemediationStateSnapshot(BaseModel):
    """Point-in-time copy of the process-wide RemediationState."""

    model_config = ConfigDict(frozen=True)

    last_rollback_at: Instant | None = None
    rollback_in_flight: bool = False
    cooldown_until: Instant | None = None

    def in_cooldown(self, now: Instant) -> bool:
        return self.cooldown_until is not None and now < self.cooldown_until


class SwapResult(BaseModel):
    """Result of one call to the external swap primitive."""

    model_config = ConfigDict(frozen=True)

    succeeded: bool
    cause: str | None = None
    is_transient: bool = False

    @classmethod
    def ok(cls) -> "SwapResult":
        return cls(succeeded=True)

    @classmethod
    def failure(cls, cause: str, *, transient: bool) -> "SwapResult":
        return cls(succeeded=False, cause=cause, is_transient=transient)


class RollbackStatus(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RollbackOutcome(BaseModel):
    """Terminal result of one RollbackExecutor.execute() call."""

    model_config = ConfigDict(frozen=True)

    status: RollbackStatus
    cause: str | None = None
    attempts: int = Field(default=0, ge=0, description="Number of swap calls made")
    event: DeploymentEvent | None = Field(
        default=None, description="Rollback event appended to the change log"
    )

    @property
    def succeeded(self) -> bool:
        return self.status == RollbackStatus.SUCCEEDED

    def raise_for_failure(self) -> None:
        """Raise RollbackFailed if this outcome is a failure."""
        if not self.succeeded:
            raise RollbackFailed(self.cause or "unknown cause")
