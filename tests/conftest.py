"""Pytest configuration and fixtures for the Rollback Copilot tests."""

import pytest

from rollback_copilot.adapters import InMemoryChangeLog, InMemoryDecisionLog
from rollback_copilot.aggregator import SampleAggregator
from rollback_copilot.baseline import BaselineTracker
from rollback_copilot.correlator import DeploymentEventCorrelator
from rollback_copilot.executor import RollbackExecutor
from rollback_copilot.loop import OrchestrationLoop
from rollback_copilot.models import CopilotConfig, ExecutorSettings
from rollback_copilot.policy import RemediationPolicy, RemediationState

from .fakes import FakeAlertSink, FakeClock, FakeMetricsSource, FakeSwapBackend, RecordingSleep


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def config() -> CopilotConfig:
    """Defaults, with short timeouts so failure paths finish quickly."""
    return CopilotConfig(
        metrics_timeout_seconds=0.5,
        change_log_timeout_seconds=0.5,
        alert_timeout_seconds=0.5,
    )


@pytest.fixture
def change_log(clock: FakeClock) -> InMemoryChangeLog:
    return InMemoryChangeLog(clock=clock)


@pytest.fixture
def decision_log() -> InMemoryDecisionLog:
    return InMemoryDecisionLog()


@pytest.fixture
def state() -> RemediationState:
    return RemediationState()


@pytest.fixture
def policy(state, decision_log, config, clock) -> RemediationPolicy:
    return RemediationPolicy(state, decision_log, config.policy, clock=clock)


@pytest.fixture
def correlator(change_log, clock) -> DeploymentEventCorrelator:
    return DeploymentEventCorrelator(change_log, timeout_seconds=0.5, clock=clock)


@pytest.fixture
def backend() -> FakeSwapBackend:
    return FakeSwapBackend()


@pytest.fixture
def executor(backend, state, correlator, config, clock, sleep) -> RollbackExecutor:
    return RollbackExecutor(
        backend,
        state,
        correlator,
        ExecutorSettings(swap_timeout_seconds=0.5),
        cooldown=config.policy.cooldown,
        clock=clock,
        sleep=sleep,
    )


@pytest.fixture
def source() -> FakeMetricsSource:
    return FakeMetricsSource()


@pytest.fixture
def alerts() -> FakeAlertSink:
    return FakeAlertSink()


@pytest.fixture
def copilot(source, policy, correlator, executor, alerts, config, clock) -> OrchestrationLoop:
    return OrchestrationLoop(
        source=source,
        aggregator=SampleAggregator(config.window_capacity, clock=clock),
        baseline=BaselineTracker(config.baseline_min_samples, clock=clock),
        correlator=correlator,
        policy=policy,
        executor=executor,
        alert_sink=alerts,
        config=config,
        clock=clock,
    )
