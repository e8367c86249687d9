"""Property tests for the Remediation Policy Engine decision table."""

from hypothesis import given, settings
from hypothesis import strategies as st

from rollback_copilot.adapters import InMemoryDecisionLog
from rollback_copilot.correlator import latest_correlatable
from rollback_copilot.models import (
    DeploymentEvent,
    DeploymentEventKind,
    DeploymentOutcome,
    HealthState,
    RemediationAction,
    RemediationStateSnapshot,
)
from rollback_copilot.policy import RemediationPolicy, RemediationState, decide

from .strategies import T0, deployment_events, deviations, health_states, remediation_states

# === INVARIANT: Never two rollbacks at once, never inside cooldown ===


@given(
    health=health_states,
    deviation=deviations,
    event=st.none() | deployment_events(),
    state=remediation_states(),
)
@settings(max_examples=500)
def test_no_rollback_while_in_flight_or_cooling_down(
    health: HealthState,
    deviation: float | None,
    event: DeploymentEvent | None,
    state: RemediationStateSnapshot,
):
    action, reason = decide(health, deviation, event, state, T0)
    if state.rollback_in_flight or state.in_cooldown(T0):
        assert action == RemediationAction.NO_ACTION
        assert reason


# === INVARIANT: Rollback requires Unhealthy plus a correlated change ===


@given(
    health=health_states,
    deviation=deviations,
    event=st.none() | deployment_events(),
    state=remediation_states(),
)
@settings(max_examples=500)
def test_rollback_only_when_unhealthy_with_evidence(
    health: HealthState,
    deviation: float | None,
    event: DeploymentEvent | None,
    state: RemediationStateSnapshot,
):
    action, _ = decide(health, deviation, event, state, T0)
    if action == RemediationAction.ROLLBACK:
        assert health == HealthState.UNHEALTHY
        assert event is not None


@given(deviation=deviations, event=st.none() | deployment_events())
@settings(max_examples=300)
def test_unhealthy_and_free_always_acts(deviation: float | None, event: DeploymentEvent | None):
    action, _ = decide(HealthState.UNHEALTHY, deviation, event, RemediationStateSnapshot(), T0)
    expected = RemediationAction.ROLLBACK if event is not None else RemediationAction.WARN
    assert action == expected


@given(health=health_states, event=st.none() | deployment_events())
@settings(max_examples=200)
def test_healthy_and_unknown_never_act(health: HealthState, event: DeploymentEvent | None):
    action, _ = decide(health, 1_000_000.0, event, RemediationStateSnapshot(), T0)
    if health in (HealthState.HEALTHY, HealthState.UNKNOWN):
        assert action == RemediationAction.NO_ACTION


# === INVARIANT: Only successful, non-rollback changes count as evidence ===


@given(events=st.lists(deployment_events(), max_size=10))
@settings(max_examples=300)
def test_evidence_is_a_successful_foreign_change(events: list[DeploymentEvent]):
    policy = RemediationPolicy(RemediationState(), InMemoryDecisionLog(), clock=lambda: T0)
    decision = policy.evaluate(HealthState.UNHEALTHY, None, events)

    chosen = latest_correlatable(events)
    if decision.action == RemediationAction.ROLLBACK:
        assert decision.correlated_event == chosen
        assert chosen.outcome == DeploymentOutcome.SUCCEEDED
        assert chosen.kind != DeploymentEventKind.ROLLBACK
    else:
        assert chosen is None
