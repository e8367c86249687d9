"""Remediation Policy Engine - Deterministic remediation decisions.

Key Principle: "Rules decide"
The decision table below is the only place an action is chosen. There is no
scoring, no learning and no model in this path.

Decision table (first match wins):
1. rollback in flight                         -> NO_ACTION
2. now < cooldown_until                       -> NO_ACTION
3. UNHEALTHY + correlated successful change   -> ROLLBACK
4. UNHEALTHY + no correlated change           -> WARN
5. DEGRADED + deviation > threshold           -> WARN
6. otherwise                                  -> NO_ACTION

INVARIANT: at most one rollback is in flight per process. A ROLLBACK
decision reserves the slot atomically under the RemediationState lock; a
concurrent evaluation that loses the race degrades to NO_ACTION.
"""

import logging
import threading
from collections.abc import Callable, Sequence

from whenever import Instant, TimeDelta

from rollback_copilot.correlator import latest_correlatable
from rollback_copilot.errors import EvaluationError, RollbackFailed
from rollback_copilot.interfaces import DecisionLog  # noqa: TC001
from rollback_copilot.models import (
    DeploymentEvent,
    HealthState,
    PolicyThresholds,
    RemediationAction,
    RemediationDecision,
    RemediationStateSnapshot,
    RollbackOutcome,
    StatsSnapshot,
)

logger = logging.getLogger(__name__)

IN_FLIGHT_REASON = "rollback already in progress"
EVALUATION_ERROR_REASON = "evaluation error"


def _cooldown_reason(cooldown_until: Instant) -> str:
    return f"in cooldown until {cooldown_until.format_iso()}"


def refusal_reason(state: RemediationStateSnapshot, now: Instant) -> str | None:
    """Why no new rollback may start right now, or None if one may."""
    if state.rollback_in_flight:
        return IN_FLIGHT_REASON
    if state.in_cooldown(now):
        assert state.cooldown_until is not None
        return _cooldown_reason(state.cooldown_until)
    return None


class RemediationState:
    """The process-wide rollback bookkeeping, guarded by its own lock.

    Only try_begin_rollback() and finish_rollback() mutate it. Neither awaits
    while holding the lock, so it is safe from threads and coroutines alike.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_rollback_at: Instant | None = None
        self._rollback_in_flight = False
        self._cooldown_until: Instant | None = None

    def snapshot(self) -> RemediationStateSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> RemediationStateSnapshot:
        return RemediationStateSnapshot(
            last_rollback_at=self._last_rollback_at,
            rollback_in_flight=self._rollback_in_flight,
            cooldown_until=self._cooldown_until,
        )

    def try_begin_rollback(self, now: Instant) -> str | None:
        """Atomically reserve the rollback slot.

        Returns None when the slot was reserved, otherwise the reason it
        could not be (in flight or in cooldown).
        """
        with self._lock:
            reason = refusal_reason(self._snapshot_locked(), now)
            if reason is None:
                self._rollback_in_flight = True
            return reason

    def finish_rollback(self, now: Instant, cooldown: TimeDelta) -> RemediationStateSnapshot:
        """Release the slot and start the cooldown, whatever the outcome."""
        with self._lock:
            self._rollback_in_flight = False
            self._last_rollback_at = now
            self._cooldown_until = now + cooldown
            return self._snapshot_locked()


def decide(
    health_state: HealthState,
    deviation_percent: float | None,
    correlated_event: DeploymentEvent | None,
    state: RemediationStateSnapshot,
    now: Instant,
    thresholds: PolicyThresholds | None = None,
) -> tuple[RemediationAction, str]:
    """Apply the decision table. Pure; returns (action, reason).

    correlated_event is expected to come from latest_correlatable(), so the
    copilot's own rollback events never count as evidence for rule 3.
    """
    if thresholds is None:
        thresholds = PolicyThresholds()

    reason = refusal_reason(state, now)
    if reason is not None:
        return RemediationAction.NO_ACTION, reason

    if health_state == HealthState.UNHEALTHY:
        if correlated_event is not None:
            return RemediationAction.ROLLBACK, (
                f"unhealthy after {correlated_event.kind} {correlated_event.event_id} "
                f"by {correlated_event.actor} at {correlated_event.timestamp.format_iso()}"
            )
        return (
            RemediationAction.WARN,
            "unhealthy, no recent deployment; investigate external cause",
        )

    if (
        health_state == HealthState.DEGRADED
        and deviation_percent is not None
        and deviation_percent > thresholds.deviation_threshold_percent
    ):
        return RemediationAction.WARN, (
            f"degraded, average latency {deviation_percent:.1f}% above baseline "
            f"(threshold {thresholds.deviation_threshold_percent:.0f}%)"
        )

    return RemediationAction.NO_ACTION, f"{health_state}, no action required"


class RemediationPolicy:
    """Evaluates the decision table and keeps the audit trail."""

    def __init__(
        self,
        state: RemediationState,
        decision_log: DecisionLog,
        thresholds: PolicyThresholds | None = None,
        *,
        clock: Callable[[], Instant] = Instant.now,
    ) -> None:
        self.state = state
        self.decision_log = decision_log
        self.thresholds = thresholds or PolicyThresholds()
        self._clock = clock

    def evaluate(
        self,
        health_state: HealthState,
        deviation_percent: float | None,
        events: Sequence[DeploymentEvent],
        *,
        snapshot: StatsSnapshot | None = None,
    ) -> RemediationDecision:
        """Decide for one cycle and append the decision to the log.

        events are the recent events in the lookback window; only successful
        non-rollback changes count as correlation evidence. A ROLLBACK result
        means the caller now owns the reserved rollback slot.
        """
        now = self._clock()
        correlated = latest_correlatable(events)
        action, reason = decide(
            health_state,
            deviation_percent,
            correlated,
            self.state.snapshot(),
            now,
            self.thresholds,
        )

        if action == RemediationAction.ROLLBACK:
            refusal = self.state.try_begin_rollback(now)
            if refusal is not None:
                action, reason = RemediationAction.NO_ACTION, refusal

        decision = RemediationDecision(
            timestamp=now,
            health_state=health_state,
            deviation_percent=deviation_percent,
            correlated_event=correlated,
            action=action,
            reason=reason,
            snapshot=snapshot,
        )
        self._record(decision)
        return decision

    def record_evaluation_error(
        self, error: EvaluationError, *, snapshot: StatsSnapshot | None = None
    ) -> RemediationDecision:
        """Audit a failed cycle as NO_ACTION."""
        decision = RemediationDecision(
            timestamp=self._clock(),
            health_state=HealthState.UNKNOWN,
            action=RemediationAction.NO_ACTION,
            reason=f"{EVALUATION_ERROR_REASON}: {error}",
            snapshot=snapshot,
        )
        self._record(decision)
        return decision

    def record_rollback_outcome(
        self, outcome: RollbackOutcome, decision: RemediationDecision
    ) -> RemediationDecision:
        """Audit the end of the rollback that decision started.

        A failure is recorded as a WARN escalation carrying the full cause.
        """
        try:
            outcome.raise_for_failure()
        except RollbackFailed as e:
            action = RemediationAction.WARN
            reason = (
                f"rollback failed after {outcome.attempts} attempt(s): {e.cause}; "
                "manual intervention required"
            )
        else:
            action = RemediationAction.NO_ACTION
            reason = f"rollback completed after {outcome.attempts} attempt(s)"

        record = RemediationDecision(
            timestamp=self._clock(),
            health_state=decision.health_state,
            deviation_percent=decision.deviation_percent,
            correlated_event=decision.correlated_event,
            action=action,
            reason=reason,
            snapshot=decision.snapshot,
        )
        self._record(record)
        return record

    def _record(self, decision: RemediationDecision) -> None:
        if decision.action == RemediationAction.NO_ACTION:
            logger.debug("Decision %s: %s", decision.action, decision.reason)
        else:
            logger.info(
                "Decision %s (%s): %s", decision.action, decision.health_state, decision.reason
            )
        try:
            self.decision_log.append(decision)
        except OSError:
            logger.exception("Failed to append decision %s to the log", decision.decision_id)
