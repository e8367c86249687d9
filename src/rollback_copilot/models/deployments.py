"""Deployment change events read from (and appended to) the change log."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from whenever import Instant  # noqa: TC002 - Pydantic needs runtime imports


class DeploymentEventKind(StrEnum):
    SLOT_SWAP = "slot_swap"  # Traffic cutover between two deployment slots
    DEPLOYMENT = "deployment"  # New build deployed in place
    CONFIG_CHANGE = "config_change"  # App settings / feature flags changed
    ROLLBACK = "rollback"  # Swap performed by the copilot itself


# Changes that can explain a regression. The copilot's own rollbacks are
# recorded for postmortems but are never grounds for another rollback.
CORRELATABLE_KINDS = frozenset(
    {
        DeploymentEventKind.SLOT_SWAP,
        DeploymentEventKind.DEPLOYMENT,
        DeploymentEventKind.CONFIG_CHANGE,
    }
)


class DeploymentOutcome(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class DeploymentEvent(BaseModel):
    """An immutable, append-only record of an external change."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(description="Unique id; change logs deduplicate on it")
    timestamp: Instant
    kind: DeploymentEventKind
    actor: str = Field(description="Who or what performed the change")
    outcome: DeploymentOutcome
    description: str | None = None

    @property
    def is_correlatable(self) -> bool:
        return self.outcome == DeploymentOutcome.SUCCEEDED and self.kind in CORRELATABLE_KINDS
