"""Deployment Event Correlator.

Answers "what changed recently?" from the deployment change log and records
the copilot's own rollbacks there. The change log is an unreliable remote:
every call carries a timeout, and a failed query degrades to "no recent
events" instead of raising.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence

from whenever import Instant, TimeDelta

from rollback_copilot.errors import TransientSourceFailure
from rollback_copilot.interfaces import DeploymentChangeLog  # noqa: TC001
from rollback_copilot.models import DeploymentEvent

logger = logging.getLogger(__name__)


def latest_correlatable(events: Sequence[DeploymentEvent]) -> DeploymentEvent | None:
    """Most recent successful non-rollback change, or None."""
    candidates = [e for e in events if e.is_correlatable]
    if not candidates:
        return None
    return max(candidates, key=lambda e: e.timestamp)


class DeploymentEventCorrelator:
    def __init__(
        self,
        change_log: DeploymentChangeLog,
        *,
        timeout_seconds: float = 10.0,
        clock: Callable[[], Instant] = Instant.now,
    ) -> None:
        self.change_log = change_log
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    async def recent_events(self, lookback: TimeDelta) -> list[DeploymentEvent]:
        """Events with timestamp >= now - lookback, most recent first.

        Never raises: an unreachable or slow change log yields [].
        """
        try:
            events = await asyncio.wait_for(
                self.change_log.query(lookback), timeout=self.timeout_seconds
            )
            cutoff = self._clock() - lookback
            recent = [e for e in events if e.timestamp >= cutoff]
        except TimeoutError:
            logger.warning("Change log query timed out after %.1fs", self.timeout_seconds)
            return []
        except (TransientSourceFailure, OSError) as e:
            logger.warning("Change log unavailable: %s", e)
            return []
        except Exception:  # collaborator boundary: no evidence rather than no decision
            logger.exception("Change log query failed")
            return []

        recent.sort(key=lambda e: e.timestamp, reverse=True)
        return recent

    async def correlated_event(self, lookback: TimeDelta) -> DeploymentEvent | None:
        """The change that best explains a regression right now, if any."""
        return latest_correlatable(await self.recent_events(lookback))

    async def append(self, event: DeploymentEvent) -> bool:
        """Record event in the change log. Returns False (logged) on failure."""
        try:
            await asyncio.wait_for(self.change_log.append(event), timeout=self.timeout_seconds)
        except TimeoutError:
            logger.error("Timed out recording %s event %s", event.kind, event.event_id)
            return False
        except (TransientSourceFailure, OSError) as e:
            logger.error("Failed to record %s event %s: %s", event.kind, event.event_id, e)
            return False
        except Exception:  # collaborator boundary
            logger.exception("Change log rejected %s event %s", event.kind, event.event_id)
            return False
        logger.info("Recorded %s event %s (%s)", event.kind, event.event_id, event.outcome)
        return True
