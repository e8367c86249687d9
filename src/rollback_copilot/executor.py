"""Rollback Executor - performs the slot swap with retry and cooldown.

Retry policy:
- Only transient failures are retried, up to swap_max_retries times
- Delay before retry i (0-based) is backoff_base_seconds * backoff_factor**i
- A swap call that exceeds swap_timeout_seconds is a transient failure
- An exception raised by the backend is a non-transient failure

Every terminal outcome releases the rollback slot and starts the cooldown,
appends a ROLLBACK event to the change log and is returned to the caller.
Failures are never swallowed; the caller escalates them.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from uuid import uuid4

from whenever import Instant, TimeDelta

from rollback_copilot.correlator import DeploymentEventCorrelator  # noqa: TC001
from rollback_copilot.interfaces import SwapBackend  # noqa: TC001
from rollback_copilot.models import (
    DeploymentEvent,
    DeploymentEventKind,
    DeploymentOutcome,
    ExecutorSettings,
    RollbackOutcome,
    RollbackStatus,
    SwapResult,
)
from rollback_copilot.policy import RemediationState  # noqa: TC001

logger = logging.getLogger(__name__)


class RollbackExecutor:
    def __init__(
        self,
        backend: SwapBackend,
        state: RemediationState,
        correlator: DeploymentEventCorrelator,
        settings: ExecutorSettings | None = None,
        *,
        cooldown: TimeDelta = TimeDelta(minutes=15),
        clock: Callable[[], Instant] = Instant.now,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        actor: str = "rollback-copilot",
    ) -> None:
        self.backend = backend
        self.state = state
        self.correlator = correlator
        self.settings = settings or ExecutorSettings()
        self.cooldown = cooldown
        self.actor = actor
        self._clock = clock
        self._sleep = sleep

    async def execute(self, reason: str, *, reserved: bool = False) -> RollbackOutcome:
        """Swap back to the previous slot.

        reserved=True means the caller already holds the rollback slot (the
        policy engine reserved it). Otherwise the slot is reserved here, and
        if that fails the call returns FAILED without touching the backend
        or the cooldown.
        """
        if not reserved:
            refusal = self.state.try_begin_rollback(self._clock())
            if refusal is not None:
                logger.warning("Rollback refused: %s", refusal)
                return RollbackOutcome(status=RollbackStatus.FAILED, cause=refusal)

        logger.info("Starting rollback: %s", reason)
        try:
            result, attempts = await self._swap_with_retry()
        finally:
            state = self.state.finish_rollback(self._clock(), self.cooldown)
            logger.info("Rollback slot released, cooldown until %s", state.cooldown_until)

        outcome_kind = DeploymentOutcome.SUCCEEDED if result.succeeded else DeploymentOutcome.FAILED
        event = DeploymentEvent(
            event_id=f"rollback-{uuid4()}",
            timestamp=self._clock(),
            kind=DeploymentEventKind.ROLLBACK,
            actor=self.actor,
            outcome=outcome_kind,
            description=reason if result.succeeded else f"{reason}; failed: {result.cause}",
        )
        # The swap already happened; a lost audit event never changes the outcome
        if not await self.correlator.append(event):
            logger.warning("Rollback event %s was not recorded in the change log", event.event_id)

        if result.succeeded:
            logger.info("Rollback succeeded after %d attempt(s)", attempts)
            return RollbackOutcome(status=RollbackStatus.SUCCEEDED, attempts=attempts, event=event)

        logger.error("Rollback failed after %d attempt(s): %s", attempts, result.cause)
        return RollbackOutcome(
            status=RollbackStatus.FAILED, cause=result.cause, attempts=attempts, event=event
        )

    async def _swap_with_retry(self) -> tuple[SwapResult, int]:
        max_attempts = self.settings.swap_max_retries + 1
        result = SwapResult.failure("no swap attempted", transient=False)
        for attempt in range(1, max_attempts + 1):
            result = await self._swap_once()
            if result.succeeded or not result.is_transient:
                return result, attempt
            if attempt < max_attempts:
                delay = self.settings.backoff_delay(attempt - 1)
                logger.warning(
                    "Swap failed transiently (attempt %d/%d), retrying in %.1fs: %s",
                    attempt,
                    max_attempts,
                    delay,
                    result.cause,
                )
                await self._sleep(delay)
        return result, max_attempts

    async def _swap_once(self) -> SwapResult:
        timeout = self.settings.swap_timeout_seconds
        try:
            return await asyncio.wait_for(self.backend.swap(), timeout=timeout)
        except TimeoutError:
            return SwapResult.failure(f"swap timed out after {timeout:.0f}s", transient=True)
        except Exception as e:  # backend boundary: any error is a terminal swap failure
            logger.exception("Swap backend raised")
            return SwapResult.failure(f"{type(e).__name__}: {e}", transient=False)
