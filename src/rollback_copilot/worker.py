"""Rollback Copilot worker entry point.

Builds every component from CopilotConfig, then runs the orchestration loop
(and the status API when api_port is set) until SIGINT/SIGTERM.

Usage:
    python -m rollback_copilot.worker
    # or
    rollback-copilot-worker

Environment variables (prefix ROLLBACK_COPILOT_, nested delimiter __):
    ROLLBACK_COPILOT_METRICS_ENDPOINT       - Base URL serving GET /observations
    ROLLBACK_COPILOT_CHANGE_LOG_ENDPOINT    - Base URL serving GET/POST /events (optional)
    ROLLBACK_COPILOT_CHANGE_LOG_PATH        - JSONL change log (optional)
    ROLLBACK_COPILOT_DECISION_LOG_PATH      - JSONL decision log (optional)
    ROLLBACK_COPILOT_ALERT_WEBHOOK_URL      - Alert webhook (optional)
    ROLLBACK_COPILOT_AZURE__RESOURCE_GROUP  - App Service resource group
    ROLLBACK_COPILOT_AZURE__APP_NAME        - App Service name
    ROLLBACK_COPILOT_API_PORT               - Serve the status API on this port (optional)
"""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable

import uvicorn
from whenever import Instant

from rollback_copilot.adapters import (
    AzureSlotSwapBackend,
    HttpChangeLog,
    HttpMetricsSource,
    InMemoryChangeLog,
    InMemoryDecisionLog,
    JsonlChangeLog,
    JsonlDecisionLog,
    LoggingAlertSink,
    WebhookAlertSink,
)
from rollback_copilot.aggregator import SampleAggregator
from rollback_copilot.api import create_app
from rollback_copilot.baseline import BaselineTracker
from rollback_copilot.correlator import DeploymentEventCorrelator
from rollback_copilot.errors import ConfigurationError
from rollback_copilot.executor import RollbackExecutor
from rollback_copilot.interfaces import (
    AlertSink,
    DecisionLog,
    DeploymentChangeLog,
    MetricsSource,
    SwapBackend,
)
from rollback_copilot.loop import OrchestrationLoop
from rollback_copilot.models import CopilotConfig, load_config
from rollback_copilot.policy import RemediationPolicy, RemediationState

logger = logging.getLogger(__name__)


def _change_log_from(config: CopilotConfig) -> DeploymentChangeLog:
    if config.change_log_endpoint:
        return HttpChangeLog(
            config.change_log_endpoint, timeout_seconds=config.change_log_timeout_seconds
        )
    if config.change_log_path:
        return JsonlChangeLog(config.change_log_path)
    logger.warning("No change log configured, deployment events are kept in memory only")
    return InMemoryChangeLog()


def _decision_log_from(config: CopilotConfig) -> DecisionLog:
    if config.decision_log_path:
        return JsonlDecisionLog(config.decision_log_path)
    logger.warning("No decision log path configured, decisions are kept in memory only")
    return InMemoryDecisionLog()


def _alert_sink_from(config: CopilotConfig) -> AlertSink:
    if config.alert_webhook_url:
        return WebhookAlertSink(
            config.alert_webhook_url, timeout_seconds=config.alert_timeout_seconds
        )
    return LoggingAlertSink()


def build_copilot(
    config: CopilotConfig,
    *,
    source: MetricsSource | None = None,
    swap_backend: SwapBackend | None = None,
    change_log: DeploymentChangeLog | None = None,
    decision_log: DecisionLog | None = None,
    alert_sink: AlertSink | None = None,
    clock: Callable[[], Instant] = Instant.now,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> OrchestrationLoop:
    """Wire every component from config. Explicit collaborators win over config.

    clock and sleep are injectable so a whole copilot can run on virtual time.

    Raises:
        ConfigurationError: no metrics source or swap backend can be built.
    """
    if source is None:
        if not config.metrics_endpoint:
            raise ConfigurationError("metrics_endpoint is required to poll observations")
        source = HttpMetricsSource(
            config.metrics_endpoint, timeout_seconds=config.metrics_timeout_seconds
        )
    if swap_backend is None:
        swap_backend = AzureSlotSwapBackend(config.azure)
    if change_log is None:
        change_log = _change_log_from(config)
    if decision_log is None:
        decision_log = _decision_log_from(config)
    if alert_sink is None:
        alert_sink = _alert_sink_from(config)

    state = RemediationState()
    correlator = DeploymentEventCorrelator(
        change_log,
        timeout_seconds=config.change_log_timeout_seconds,
        clock=clock,
    )
    policy = RemediationPolicy(state, decision_log, config.policy, clock=clock)
    executor = RollbackExecutor(
        swap_backend,
        state,
        correlator,
        config.executor,
        cooldown=config.policy.cooldown,
        clock=clock,
        sleep=sleep,
    )
    return OrchestrationLoop(
        source=source,
        aggregator=SampleAggregator(
            config.window_capacity, slow_threshold_ms=config.slow_observation_ms, clock=clock
        ),
        baseline=BaselineTracker(config.baseline_min_samples, clock=clock),
        correlator=correlator,
        policy=policy,
        executor=executor,
        alert_sink=alert_sink,
        config=config,
        clock=clock,
    )


async def _close_adapters(copilot: OrchestrationLoop) -> None:
    for adapter in (copilot.source, copilot.correlator.change_log, copilot.alert_sink):
        aclose = getattr(adapter, "aclose", None)
        if aclose is not None:
            await aclose()


async def run_worker(copilot: OrchestrationLoop) -> None:
    """Run the loop, and the status API if configured, until the loop stops."""
    config = copilot.config
    server: uvicorn.Server | None = None
    server_task: asyncio.Task[None] | None = None

    if config.api_port is not None:
        server = uvicorn.Server(
            uvicorn.Config(
                create_app(copilot),
                host=config.api_host,
                port=config.api_port,
                log_level="info",
            )
        )
        server_task = asyncio.create_task(server.serve(), name="status-api")
        logger.info("Status API listening on %s:%d", config.api_host, config.api_port)

    try:
        await copilot.run()
    finally:
        if server is not None and server_task is not None:
            server.should_exit = True
            await server_task
        await _close_adapters(copilot)


def main() -> None:
    """Entry point for the worker process."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        copilot = build_copilot(load_config())
    except ConfigurationError as e:
        logger.error("Refusing to start: %s", e)
        raise SystemExit(1) from e

    run_forever(copilot)


def run_forever(copilot: OrchestrationLoop) -> None:
    """Run copilot on a fresh event loop until SIGINT/SIGTERM."""
    loop = asyncio.new_event_loop()

    # Graceful shutdown on SIGTERM/SIGINT: finish the cycle and any rollback
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, copilot.stop)

    try:
        loop.run_until_complete(run_worker(copilot))
    except KeyboardInterrupt:
        logger.info("Worker interrupted, shutting down")
    finally:
        loop.close()
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
