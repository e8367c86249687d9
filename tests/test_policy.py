"""Unit tests for the Remediation Policy Engine."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from whenever import TimeDelta

from rollback_copilot.errors import EvaluationError
from rollback_copilot.models import (
    HealthState,
    PolicyThresholds,
    RemediationAction,
    RemediationStateSnapshot,
    RollbackOutcome,
    RollbackStatus,
)
from rollback_copilot.policy import (
    IN_FLIGHT_REASON,
    RemediationPolicy,
    RemediationState,
    decide,
)

from .fakes import T0, slot_swap

SWAP = slot_swap(T0 - TimeDelta(minutes=2), event_id="swap-42")
IDLE = RemediationStateSnapshot()


class TestDecisionTable:
    def test_in_flight_wins(self):
        state = RemediationStateSnapshot(rollback_in_flight=True)
        action, reason = decide(HealthState.UNHEALTHY, 9900.0, SWAP, state, T0)
        assert action == RemediationAction.NO_ACTION
        assert reason == IN_FLIGHT_REASON

    def test_cooldown(self):
        state = RemediationStateSnapshot(cooldown_until=T0 + TimeDelta(minutes=1))
        action, reason = decide(HealthState.UNHEALTHY, 9900.0, SWAP, state, T0)
        assert action == RemediationAction.NO_ACTION
        assert reason.startswith("in cooldown")

    def test_cooldown_expired(self):
        state = RemediationStateSnapshot(cooldown_until=T0)
        action, _ = decide(HealthState.UNHEALTHY, 9900.0, SWAP, state, T0)
        assert action == RemediationAction.ROLLBACK

    def test_unhealthy_with_correlated_change_rolls_back(self):
        action, reason = decide(HealthState.UNHEALTHY, None, SWAP, IDLE, T0)
        assert action == RemediationAction.ROLLBACK
        assert "swap-42" in reason

    def test_unhealthy_without_change_warns(self):
        action, reason = decide(HealthState.UNHEALTHY, 9900.0, None, IDLE, T0)
        assert action == RemediationAction.WARN
        assert "investigate external cause" in reason

    def test_degraded_with_large_deviation_warns(self):
        action, _ = decide(HealthState.DEGRADED, 150.0, SWAP, IDLE, T0)
        assert action == RemediationAction.WARN

    def test_degraded_threshold_is_strict(self):
        action, _ = decide(HealthState.DEGRADED, 100.0, None, IDLE, T0)
        assert action == RemediationAction.NO_ACTION

    def test_degraded_without_baseline_is_no_action(self):
        action, _ = decide(HealthState.DEGRADED, None, SWAP, IDLE, T0)
        assert action == RemediationAction.NO_ACTION

    def test_custom_deviation_threshold(self):
        thresholds = PolicyThresholds(deviation_threshold_percent=20)
        action, _ = decide(HealthState.DEGRADED, 25.0, None, IDLE, T0, thresholds)
        assert action == RemediationAction.WARN

    @pytest.mark.parametrize("health", [HealthState.HEALTHY, HealthState.UNKNOWN])
    def test_otherwise_no_action(self, health):
        action, _ = decide(health, 9900.0, SWAP, IDLE, T0)
        assert action == RemediationAction.NO_ACTION


class TestEvaluate:
    def test_every_evaluation_is_logged(self, policy, decision_log):
        policy.evaluate(HealthState.HEALTHY, None, [])
        policy.evaluate(HealthState.UNHEALTHY, None, [])
        assert [d.action for d in decision_log.decisions] == [
            RemediationAction.NO_ACTION,
            RemediationAction.WARN,
        ]

    def test_rollback_reserves_slot(self, policy, state):
        decision = policy.evaluate(HealthState.UNHEALTHY, 9900.0, [SWAP])
        assert decision.action == RemediationAction.ROLLBACK
        assert decision.correlated_event == SWAP
        assert state.snapshot().rollback_in_flight

        second = policy.evaluate(HealthState.UNHEALTHY, 9900.0, [SWAP])
        assert second.action == RemediationAction.NO_ACTION
        assert second.reason == IN_FLIGHT_REASON

    def test_failed_change_is_not_evidence(self, policy):
        failed = slot_swap(T0, outcome="failed")
        decision = policy.evaluate(HealthState.UNHEALTHY, None, [failed])
        assert decision.action == RemediationAction.WARN
        assert decision.correlated_event is None

    def test_concurrent_evaluations_emit_one_rollback(self, decision_log):
        state = RemediationState()
        policy = RemediationPolicy(state, decision_log, clock=lambda: T0)

        with ThreadPoolExecutor(max_workers=16) as pool:
            decisions = list(
                pool.map(
                    lambda _: policy.evaluate(HealthState.UNHEALTHY, 9900.0, [SWAP]),
                    range(64),
                )
            )

        rollbacks = [d for d in decisions if d.action == RemediationAction.ROLLBACK]
        assert len(rollbacks) == 1
        assert len(decision_log) == 64

    def test_evaluation_error_is_no_action(self, policy, decision_log):
        error = EvaluationError("evaluation", RuntimeError("boom"))
        decision = policy.record_evaluation_error(error)
        assert decision.action == RemediationAction.NO_ACTION
        assert decision.health_state == HealthState.UNKNOWN
        assert decision.reason == "evaluation error: evaluation failed: RuntimeError: boom"
        assert decision_log.decisions == [decision]


class TestRollbackOutcomeRecords:
    def test_failure_is_escalated(self, policy):
        decision = policy.evaluate(HealthState.UNHEALTHY, 9900.0, [SWAP])
        outcome = RollbackOutcome(status=RollbackStatus.FAILED, cause="quota exceeded", attempts=3)
        record = policy.record_rollback_outcome(outcome, decision)
        assert record.action == RemediationAction.WARN
        assert record.reason == (
            "rollback failed after 3 attempt(s): quota exceeded; manual intervention required"
        )
        assert record.correlated_event == SWAP

    def test_success_is_recorded(self, policy):
        decision = policy.evaluate(HealthState.UNHEALTHY, 9900.0, [SWAP])
        outcome = RollbackOutcome(status=RollbackStatus.SUCCEEDED, attempts=1)
        record = policy.record_rollback_outcome(outcome, decision)
        assert record.action == RemediationAction.NO_ACTION
        assert record.reason.startswith("rollback completed")


class TestRemediationState:
    def test_try_begin_is_exclusive(self):
        state = RemediationState()
        assert state.try_begin_rollback(T0) is None
        assert state.try_begin_rollback(T0) == IN_FLIGHT_REASON

    def test_finish_starts_cooldown(self):
        state = RemediationState()
        state.try_begin_rollback(T0)
        snap = state.finish_rollback(T0, TimeDelta(minutes=15))
        assert not snap.rollback_in_flight
        assert snap.last_rollback_at == T0
        assert snap.cooldown_until == T0 + TimeDelta(minutes=15)
        assert state.try_begin_rollback(T0 + TimeDelta(minutes=14)).startswith("in cooldown")
        assert state.try_begin_rollback(T0 + TimeDelta(minutes=15)) is None
