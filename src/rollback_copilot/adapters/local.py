"""In-process and file-backed adapters.

The JSONL adapters write one model per line with model_dump_json() and read
back with model_validate_json(), so whenever's Instant round-trips as ISO 8601.
File access is synchronous and guarded by a threading.Lock; the files are
append-only.
"""

import asyncio
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError
from whenever import Instant, TimeDelta

from rollback_copilot.models import DeploymentEvent, RemediationDecision

logger = logging.getLogger(__name__)


# =============================================================================
# DEPLOYMENT CHANGE LOGS
# =============================================================================


class InMemoryChangeLog:
    """Change log held in memory. Idempotent on event_id."""

    def __init__(
        self,
        events: list[DeploymentEvent] | None = None,
        *,
        clock: Callable[[], Instant] = Instant.now,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._events: dict[str, DeploymentEvent] = {}
        for event in events or []:
            self._events.setdefault(event.event_id, event)

    @property
    def events(self) -> list[DeploymentEvent]:
        with self._lock:
            return list(self._events.values())

    async def query(self, lookback: TimeDelta) -> list[DeploymentEvent]:
        cutoff = self._clock() - lookback
        with self._lock:
            return [e for e in self._events.values() if e.timestamp >= cutoff]

    async def append(self, event: DeploymentEvent) -> None:
        self.add(event)

    def add(self, event: DeploymentEvent) -> bool:
        """Store event synchronously. Returns False if event_id was already stored."""
        with self._lock:
            if event.event_id in self._events:
                logger.debug("Event %s already stored", event.event_id)
                return False
            self._events[event.event_id] = event
            return True


class JsonlChangeLog:
    """Change log persisted as JSON lines. Idempotent on event_id."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> list[DeploymentEvent]:
        """Every valid event in the file. Malformed lines are logged and skipped."""
        if not self.path.exists():
            return []
        events = []
        with self.path.open(encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    events.append(DeploymentEvent.model_validate_json(line))
                except ValidationError as e:
                    logger.warning(
                        "Skipping malformed event at %s:%d: %s", self.path, lineno, e.errors()[0]["msg"]
                    )
        return events

    def read(self) -> list[DeploymentEvent]:
        with self._lock:
            return self._read_all()

    async def query(self, lookback: TimeDelta) -> list[DeploymentEvent]:
        cutoff = Instant.now() - lookback
        events = await asyncio.to_thread(self.read)
        return [e for e in events if e.timestamp >= cutoff]

    async def append(self, event: DeploymentEvent) -> None:
        await asyncio.to_thread(self._append, event)

    def _append(self, event: DeploymentEvent) -> None:
        with self._lock:
            if any(e.event_id == event.event_id for e in self._read_all()):
                logger.debug("Event %s already stored in %s", event.event_id, self.path)
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            separator = "\n" if self._last_line_unterminated() else ""
            with self.path.open("a", encoding="utf-8") as f:
                f.write(separator + event.model_dump_json() + "\n")

    def _last_line_unterminated(self) -> bool:
        if not self.path.exists() or self.path.stat().st_size == 0:
            return False
        with self.path.open("rb") as f:
            f.seek(-1, os.SEEK_END)
            return f.read(1) != b"\n"


# =============================================================================
# DECISION LOGS
# =============================================================================


class InMemoryDecisionLog:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._decisions: list[RemediationDecision] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._decisions)

    @property
    def decisions(self) -> list[RemediationDecision]:
        with self._lock:
            return list(self._decisions)

    def append(self, decision: RemediationDecision) -> None:
        with self._lock:
            self._decisions.append(decision)

    def between(self, start: Instant, end: Instant) -> list[RemediationDecision]:
        with self._lock:
            return [d for d in self._decisions if start <= d.timestamp <= end]


class JsonlDecisionLog:
    """Append-only decision log for postmortems."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, decision: RemediationDecision) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(decision.model_dump_json() + "\n")

    def read(self) -> list[RemediationDecision]:
        with self._lock:
            if not self.path.exists():
                return []
            with self.path.open(encoding="utf-8") as f:
                return [RemediationDecision.model_validate_json(line) for line in f if line.strip()]

    def between(self, start: Instant, end: Instant) -> list[RemediationDecision]:
        decisions = [d for d in self.read() if start <= d.timestamp <= end]
        decisions.sort(key=lambda d: d.timestamp)
        return decisions


# =============================================================================
# ALERT SINKS
# =============================================================================


class LoggingAlertSink:
    """Writes alerts to the log. Used when no webhook is configured."""

    def __init__(self, logger_name: str = "rollback_copilot.alerts") -> None:
        self._logger = logging.getLogger(logger_name)

    async def notify(self, decision: RemediationDecision) -> None:
        self._logger.warning(
            "ALERT [%s] %s: %s", decision.health_state, decision.action, decision.reason
        )
