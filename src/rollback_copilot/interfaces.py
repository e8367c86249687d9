"""Protocols for the external collaborators of the Rollback Copilot.

Concrete implementations live in rollback_copilot.adapters. Anything with
the right shape works; the orchestration code never imports an adapter.

The decision log is synchronous because the policy engine appends to it
inside evaluate(), which may be called from threads as well as the loop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from whenever import Instant, TimeDelta

    from rollback_copilot.models import (
        DeploymentEvent,
        Observation,
        RemediationDecision,
        SwapResult,
    )


@runtime_checkable
class MetricsSource(Protocol):
    async def fetch_since(self, since: Instant | None) -> list[Observation]:
        """Observations strictly after since (all available when None), oldest first."""
        ...


@runtime_checkable
class DeploymentChangeLog(Protocol):
    async def query(self, lookback: TimeDelta) -> list[DeploymentEvent]: ...

    async def append(self, event: DeploymentEvent) -> None:
        """Store event. Appending an already-stored event_id is a no-op."""
        ...


@runtime_checkable
class SwapBackend(Protocol):
    async def swap(self) -> SwapResult: ...


@runtime_checkable
class AlertSink(Protocol):
    async def notify(self, decision: RemediationDecision) -> None: ...


@runtime_checkable
class DecisionLog(Protocol):
    def append(self, decision: RemediationDecision) -> None: ...

    def between(self, start: Instant, end: Instant) -> list[RemediationDecision]:
        """Decisions with start <= timestamp <= end, oldest first."""
        ...
