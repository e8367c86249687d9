"""Orchestration Loop - ties the components together on a fixed interval.

Cycle: IDLE -> POLLING -> EVALUATING -> (ACTING)? -> IDLE

- POLLING: fetch new observations into the window; an unreachable source
  is logged and the cycle continues with the existing window; any other
  failure ends the cycle with a NO_ACTION "evaluation error" decision
- EVALUATING: one snapshot per cycle feeds the classifier, the baseline
  tracker and the policy engine; any exception becomes a NO_ACTION
  "evaluation error" decision
- ACTING: a ROLLBACK decision starts the executor as a background task so
  the next poll is never blocked by a slow swap

stop() is cooperative: it takes effect at the top of the next cycle and
never cancels a rollback in progress. run() waits for it before returning.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum

from whenever import Instant

from rollback_copilot.aggregator import SampleAggregator  # noqa: TC001
from rollback_copilot.baseline import BaselineTracker  # noqa: TC001
from rollback_copilot.correlator import DeploymentEventCorrelator  # noqa: TC001
from rollback_copilot.errors import EvaluationError, InsufficientSamples, TransientSourceFailure
from rollback_copilot.executor import RollbackExecutor  # noqa: TC001
from rollback_copilot.interfaces import AlertSink, MetricsSource  # noqa: TC001
from rollback_copilot.models import (
    CopilotConfig,
    DeploymentEvent,
    HealthReport,
    HealthState,
    RemediationAction,
    RemediationDecision,
    RollbackOutcome,
    RollbackStatus,
    StatsSnapshot,
)
from rollback_copilot.models.state_machine import describe
from rollback_copilot.policy import RemediationPolicy  # noqa: TC001

logger = logging.getLogger(__name__)


class LoopPhase(StrEnum):
    IDLE = "idle"
    POLLING = "polling"
    EVALUATING = "evaluating"
    ACTING = "acting"
    STOPPED = "stopped"


class OrchestrationLoop:
    def __init__(
        self,
        *,
        source: MetricsSource,
        aggregator: SampleAggregator,
        baseline: BaselineTracker,
        correlator: DeploymentEventCorrelator,
        policy: RemediationPolicy,
        executor: RollbackExecutor,
        alert_sink: AlertSink | None = None,
        config: CopilotConfig | None = None,
        clock: Callable[[], Instant] = Instant.now,
    ) -> None:
        self.source = source
        self.aggregator = aggregator
        self.baseline = baseline
        self.correlator = correlator
        self.policy = policy
        self.executor = executor
        self.alert_sink = alert_sink
        self.config = config or CopilotConfig()
        self._clock = clock

        self.phase = LoopPhase.IDLE
        self.cycles_completed = 0
        self.last_decision: RemediationDecision | None = None
        self.last_outcome: RollbackOutcome | None = None
        self._stop_requested = asyncio.Event()
        self._rollback_tasks: set[asyncio.Task[RollbackOutcome]] = set()
        self._alert_tasks: set[asyncio.Task[None]] = set()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def stopping(self) -> bool:
        return self._stop_requested.is_set()

    @property
    def rollback_running(self) -> bool:
        return any(not t.done() for t in self._rollback_tasks)

    def stop(self) -> None:
        """Request a cooperative stop at the top of the next cycle."""
        if not self._stop_requested.is_set():
            logger.info("Stop requested")
        self._stop_requested.set()

    async def run(self) -> None:
        """Run cycles every poll_interval_seconds until stop() is called."""
        interval = self.config.poll_interval_seconds
        logger.info("Orchestration loop started: interval=%.1fs", interval)
        try:
            while not self._stop_requested.is_set():
                await self.run_cycle()
                try:
                    await asyncio.wait_for(self._stop_requested.wait(), timeout=interval)
                except TimeoutError:
                    pass
        finally:
            await self.drain()
            self.phase = LoopPhase.STOPPED
            logger.info("Orchestration loop stopped after %d cycle(s)", self.cycles_completed)

    async def drain(self) -> None:
        """Wait for in-flight rollbacks and pending alerts to finish."""
        while self._rollback_tasks or self._alert_tasks:
            pending = [*self._rollback_tasks, *self._alert_tasks]
            if self._rollback_tasks:
                logger.info("Waiting for %d in-flight rollback(s)", len(self._rollback_tasks))
            await asyncio.gather(*pending, return_exceptions=True)

    # -------------------------------------------------------------------------
    # One cycle
    # -------------------------------------------------------------------------

    async def run_cycle(self) -> RemediationDecision:
        """Poll, evaluate and (maybe) act once. Never raises for collaborator failures."""
        try:
            await self._poll()
        except EvaluationError as e:
            decision = self.policy.record_evaluation_error(e)
        else:
            decision = await self._evaluate()

        if decision.action == RemediationAction.ROLLBACK:
            self.phase = LoopPhase.ACTING
            self._start_rollback(decision)
        if decision.action != RemediationAction.NO_ACTION:
            self._notify(decision)

        self.last_decision = decision
        self.cycles_completed += 1
        self.phase = LoopPhase.IDLE
        return decision

    async def _poll(self) -> int:
        self.phase = LoopPhase.POLLING
        timeout = self.config.metrics_timeout_seconds
        since = self.aggregator.last_timestamp
        try:
            observations = await asyncio.wait_for(self.source.fetch_since(since), timeout=timeout)
            accepted = self.aggregator.record_many(observations)
        except TimeoutError:
            logger.warning("Metrics source timed out after %.1fs, skipping poll", timeout)
            return 0
        except (TransientSourceFailure, OSError) as e:
            logger.warning("Metrics source unavailable, skipping poll: %s", e)
            return 0
        except Exception as e:  # loop boundary: audited as an evaluation error
            logger.exception("Polling failed")
            raise EvaluationError("polling", e) from e

        logger.debug("Polled %d observation(s), accepted %d", len(observations), accepted)
        return accepted

    async def _evaluate(self) -> RemediationDecision:
        self.phase = LoopPhase.EVALUATING
        snapshot: StatsSnapshot | None = None
        try:
            snapshot = self.aggregator.snapshot()
            report = describe(snapshot, self.config.health)
            self._maybe_establish_baseline(report)
            deviation = self.baseline.deviation_percent(snapshot)

            # Only an unhealthy window needs correlation evidence
            events: list[DeploymentEvent] = []
            if report.state == HealthState.UNHEALTHY:
                events = await self.correlator.recent_events(
                    self.config.policy.deployment_lookback
                )

            return self.policy.evaluate(report.state, deviation, events, snapshot=snapshot)
        except Exception as e:  # loop boundary: recorded as NO_ACTION
            logger.exception("Evaluation failed")
            return self.policy.record_evaluation_error(
                EvaluationError("evaluation", e), snapshot=snapshot
            )

    def _maybe_establish_baseline(self, report: HealthReport) -> None:
        if not self.config.auto_establish_baseline or self.baseline.is_established:
            return
        if report.state != HealthState.HEALTHY:
            return
        try:
            self.baseline.establish(report.snapshot)
        except InsufficientSamples as e:
            logger.debug("Warm-up baseline not ready: %s", e)

    def health_report(self) -> HealthReport:
        """Classify the current window without running a cycle."""
        return describe(self.aggregator.snapshot(), self.config.health)

    # -------------------------------------------------------------------------
    # Acting
    # -------------------------------------------------------------------------

    def _start_rollback(self, decision: RemediationDecision) -> None:
        task = asyncio.create_task(self._run_rollback(decision), name="rollback")
        self._rollback_tasks.add(task)
        task.add_done_callback(self._rollback_tasks.discard)

    async def _run_rollback(self, decision: RemediationDecision) -> RollbackOutcome:
        try:
            outcome = await self.executor.execute(decision.reason, reserved=True)
        except Exception as e:  # loop boundary: escalate, never crash the loop
            logger.exception("Rollback executor raised")
            outcome = RollbackOutcome(
                status=RollbackStatus.FAILED, cause=f"{type(e).__name__}: {e}"
            )
        self.last_outcome = outcome
        self._notify(self.policy.record_rollback_outcome(outcome, decision))
        return outcome

    def _notify(self, decision: RemediationDecision) -> None:
        if self.alert_sink is None:
            return
        task = asyncio.create_task(self._send_alert(decision), name="alert")
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)

    async def _send_alert(self, decision: RemediationDecision) -> None:
        assert self.alert_sink is not None
        timeout = self.config.alert_timeout_seconds
        try:
            await asyncio.wait_for(self.alert_sink.notify(decision), timeout=timeout)
        except TimeoutError:
            logger.warning("Alert for decision %s timed out", decision.decision_id)
        except Exception:  # best-effort sink
            logger.exception("Alert sink failed for decision %s", decision.decision_id)
