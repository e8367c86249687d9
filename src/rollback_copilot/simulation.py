"""In-process simulation of a deployment going bad.

Runs a real OrchestrationLoop against a simulated metrics source, an
in-memory change log and a scripted swap backend, all on a virtual clock,
so a scenario that spans a 15 minute cooldown finishes instantly.

Scenarios:
- healthy:    ~50ms traffic only                             -> NO_ACTION
- regression: baseline at ~50ms, then ~5000ms traffic two
              minutes after a successful slot swap           -> ROLLBACK, then cooldown
- external:   same regression with no recent deployment      -> WARN, never ROLLBACK
"""

import asyncio
import logging
import random
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field

from pydantic import BaseModel, Field
from whenever import Instant, TimeDelta

from rollback_copilot.adapters import InMemoryChangeLog, InMemoryDecisionLog
from rollback_copilot.models import (
    CopilotConfig,
    DeploymentEvent,
    DeploymentEventKind,
    DeploymentOutcome,
    HealthState,
    Observation,
    RemediationAction,
    RemediationDecision,
    RollbackStatus,
    SwapResult,
)
from rollback_copilot.worker import build_copilot

logger = logging.getLogger(__name__)

SCENARIOS = ("healthy", "regression", "external")

HEALTHY_LATENCY_MS = 50.0
REGRESSED_LATENCY_MS = 5000.0


class SimulatedClock:
    """Virtual time. sleep() advances the clock instead of waiting."""

    def __init__(self, start: Instant | None = None) -> None:
        self._now = start or Instant.from_utc(2025, 1, 1, 12)

    def now(self) -> Instant:
        return self._now

    def advance(self, delta: TimeDelta) -> None:
        self._now = self._now + delta

    async def sleep(self, seconds: float) -> None:
        self.advance(TimeDelta(seconds=seconds))
        await asyncio.sleep(0)


class SimulatedMetricsSource:
    """Serves queued batches of observations, one batch per fetch."""

    def __init__(self, clock: SimulatedClock, *, seed: int = 7) -> None:
        self.clock = clock
        self._rng = random.Random(seed)
        self._batches: deque[list[Observation]] = deque()
        self.fetches = 0

    def queue(self, count: int, mean_latency_ms: float, *, error_rate: float = 0.0) -> None:
        """Queue count observations spread over the 10 seconds before now."""
        start = self.clock.now() - TimeDelta(seconds=10)
        step = TimeDelta(seconds=10) / count
        batch = []
        for i in range(count):
            latency = max(0.0, self._rng.gauss(mean_latency_ms, mean_latency_ms * 0.05))
            batch.append(
                Observation(
                    timestamp=start + step * i,
                    latency_ms=latency,
                    succeeded=self._rng.random() >= error_rate,
                    operation="GET /api/products",
                )
            )
        self._batches.append(batch)

    async def fetch_since(self, since: Instant | None) -> list[Observation]:
        self.fetches += 1
        if not self._batches:
            return []
        batch = self._batches.popleft()
        return [o for o in batch if since is None or o.timestamp > since]


@dataclass
class ScriptedSwapBackend:
    """Returns scripted results in order, then succeeds."""

    results: list[SwapResult] = field(default_factory=list)
    calls: int = 0

    async def swap(self) -> SwapResult:
        self.calls += 1
        if self.results:
            return self.results.pop(0)
        return SwapResult.ok()


class ScenarioResult(BaseModel):
    """What the copilot did during one scenario."""

    name: str
    expected_action: RemediationAction
    health_state: HealthState
    deviation_percent: float | None = None
    action: RemediationAction
    followup_action: RemediationAction
    swap_calls: int = 0
    rollback_status: RollbackStatus | None = None
    cooldown_until: Instant | None = None
    decisions: list[RemediationDecision] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.action == self.expected_action


def _slot_swap(at: Instant) -> DeploymentEvent:
    return DeploymentEvent(
        event_id="swap-staging-to-production",
        timestamp=at,
        kind=DeploymentEventKind.SLOT_SWAP,
        actor="release-pipeline",
        outcome=DeploymentOutcome.SUCCEEDED,
        description="staging -> production",
    )


async def run_scenario(
    name: str,
    *,
    config: CopilotConfig | None = None,
    swap_results: Sequence[SwapResult] = (),
) -> ScenarioResult:
    """Play one named scenario and report the copilot's decisions."""
    if name not in SCENARIOS:
        msg = f"Unknown scenario {name!r}, expected one of {', '.join(SCENARIOS)}"
        raise ValueError(msg)

    config = config or CopilotConfig()
    clock = SimulatedClock()
    source = SimulatedMetricsSource(clock)
    change_log = InMemoryChangeLog(clock=clock.now)
    decision_log = InMemoryDecisionLog()
    backend = ScriptedSwapBackend(list(swap_results))
    copilot = build_copilot(
        config,
        source=source,
        swap_backend=backend,
        change_log=change_log,
        decision_log=decision_log,
        alert_sink=_NullAlertSink(),
        clock=clock.now,
        sleep=clock.sleep,
    )

    window = config.window_capacity
    source.queue(window, HEALTHY_LATENCY_MS)
    await copilot.run_cycle()  # warm-up: establishes the baseline
    clock.advance(TimeDelta(seconds=config.poll_interval_seconds))

    if name == "healthy":
        source.queue(window, HEALTHY_LATENCY_MS)
        expected = RemediationAction.NO_ACTION
    else:
        if name == "regression":
            change_log.add(_slot_swap(clock.now() - TimeDelta(minutes=2)))
            expected = RemediationAction.ROLLBACK
        else:
            expected = RemediationAction.WARN
        source.queue(window, REGRESSED_LATENCY_MS)

    decision = await copilot.run_cycle()
    await copilot.drain()

    clock.advance(TimeDelta(seconds=config.poll_interval_seconds))
    followup = await copilot.run_cycle()
    await copilot.drain()

    outcome = copilot.last_outcome
    return ScenarioResult(
        name=name,
        expected_action=expected,
        health_state=decision.health_state,
        deviation_percent=decision.deviation_percent,
        action=decision.action,
        followup_action=followup.action,
        swap_calls=backend.calls,
        rollback_status=outcome.status if outcome else None,
        cooldown_until=copilot.policy.state.snapshot().cooldown_until,
        decisions=decision_log.decisions,
    )


class _NullAlertSink:
    async def notify(self, decision: RemediationDecision) -> None:
        logger.debug("Simulated alert: %s %s", decision.action, decision.reason)
