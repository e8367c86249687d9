"""FastAPI status service for a running Rollback Copilot.

Principle: "The API reports, the loop decides"
Handlers read the live window, the baseline and the decision log. The only
writes are pushing observations and explicitly (re-)establishing the
baseline; no endpoint can start a rollback.

Response models use native whenever.Instant fields; FastAPI + Pydantic
serialize them to ISO 8601 automatically.
"""

import logging

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from whenever import Instant, TimeDelta

from rollback_copilot.errors import InsufficientSamples, InvalidObservation
from rollback_copilot.loop import OrchestrationLoop  # noqa: TC001
from rollback_copilot.models import (
    BaselineResponse,
    CheckEntry,
    DecisionsResponse,
    HealthReport,
    HealthResponse,
    HealthState,
    IngestResponse,
    Observation,
    RecentObservationsResponse,
    StatusResponse,
)

logger = logging.getLogger("rollback_copilot.api")


def _parse_instant(value: str | None, default: Instant, name: str) -> Instant:
    if value is None:
        return default
    try:
        return Instant.parse_iso(value)
    except ValueError:
        raise HTTPException(
            status_code=400, detail=f"{name} must be an ISO 8601 UTC timestamp"
        ) from None


def _performance_check(report: HealthReport) -> CheckEntry:
    s = report.snapshot
    return CheckEntry(
        name="performance",
        status=report.state,
        description=report.message,
        data={
            "avg_latency_ms": round(s.avg_latency_ms, 2),
            "max_latency_ms": round(s.max_latency_ms, 2),
            "p95_latency_ms": round(s.p95_latency_ms, 2),
            "error_rate": round(s.error_rate, 4),
            "sample_count": s.sample_count,
        },
    )


def _baseline_check(loop: OrchestrationLoop, report: HealthReport) -> CheckEntry:
    baseline = loop.baseline.baseline
    if baseline is None:
        return CheckEntry(
            name="baseline",
            status=HealthState.UNKNOWN,
            description="No baseline established yet",
        )

    deviation = loop.baseline.deviation_percent(report.snapshot)
    threshold = loop.config.policy.deviation_threshold_percent
    if deviation is None:
        description = "Baseline average is zero; deviation is undefined"
        status = HealthState.UNKNOWN
    elif deviation > threshold:
        description = f"Average latency is {deviation:.1f}% above baseline"
        status = HealthState.DEGRADED
    else:
        description = f"Average latency deviation from baseline: {deviation:.1f}%"
        status = HealthState.HEALTHY

    return CheckEntry(
        name="baseline",
        status=status,
        description=description,
        data={
            "baseline_avg_latency_ms": round(baseline.snapshot.avg_latency_ms, 2),
            "deviation_percent": round(deviation, 2) if deviation is not None else None,
        },
    )


def create_app(loop: OrchestrationLoop) -> FastAPI:
    """Build the status API around a (possibly running) orchestration loop."""
    app = FastAPI(
        title="Rollback Copilot API",
        description="Health, decisions and baseline of a running Rollback Copilot.",
        version="0.1.0",
    )
    app.state.loop = loop

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]  # Starlette middleware typing
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # =========================================================================
    # ENDPOINTS
    # =========================================================================

    @app.get("/health")
    async def get_health(response: Response) -> HealthResponse:
        """Health report over the live window. 503 when Unhealthy."""
        report = loop.health_report()
        if report.state == HealthState.UNHEALTHY:
            response.status_code = 503
        return HealthResponse(
            status=report.state,
            timestamp=Instant.now(),
            checks=[_performance_check(report), _baseline_check(loop, report)],
        )

    @app.get("/status")
    async def get_status() -> StatusResponse:
        """Controller status: loop phase, window, baseline, remediation state."""
        report = loop.health_report()
        baseline = loop.baseline.baseline
        return StatusResponse(
            phase=loop.phase,
            health_state=report.state,
            timestamp=Instant.now(),
            snapshot=report.snapshot,
            totals=loop.aggregator.totals(),
            baseline_established=baseline is not None,
            baseline_captured_at=baseline.captured_at if baseline else None,
            deviation_percent=loop.baseline.deviation_percent(report.snapshot),
            remediation=loop.policy.state.snapshot(),
            cycles_completed=loop.cycles_completed,
            last_decision=loop.last_decision,
        )

    @app.get("/decisions")
    async def get_decisions(start: str | None = None, end: str | None = None) -> DecisionsResponse:
        """Decisions in [start, end]. Defaults to the last 24 hours."""
        now = Instant.now()
        start_at = _parse_instant(start, now - TimeDelta(hours=24), "start")
        end_at = _parse_instant(end, now, "end")
        if start_at > end_at:
            raise HTTPException(status_code=400, detail="start must not be after end")
        return DecisionsResponse(
            start=start_at,
            end=end_at,
            decisions=loop.policy.decision_log.between(start_at, end_at),
        )

    @app.post("/baseline")
    async def establish_baseline() -> BaselineResponse:
        """(Re-)establish the baseline from the current window."""
        try:
            baseline = loop.baseline.establish(loop.aggregator.snapshot())
        except InsufficientSamples as e:
            raise HTTPException(status_code=409, detail=str(e)) from None
        logger.info("Baseline established via API")
        return BaselineResponse(
            name=baseline.name, captured_at=baseline.captured_at, snapshot=baseline.snapshot
        )

    @app.post("/observations")
    async def ingest_observations(observations: list[Observation]) -> IngestResponse:
        """Push observations into the window, in order. 400 if none were accepted."""
        accepted = 0
        errors: list[str] = []
        for observation in observations:
            try:
                loop.aggregator.record(observation)
            except InvalidObservation as e:
                errors.append(str(e))
                continue
            accepted += 1

        if errors:
            logger.warning("Rejected %d pushed observation(s)", len(errors))
        if observations and accepted == 0:
            raise HTTPException(status_code=400, detail=errors)
        return IngestResponse(accepted=accepted, rejected=len(errors), errors=errors)

    @app.get("/observations/recent")
    async def get_recent(
        limit: int = Query(default=10, ge=1, le=100),
    ) -> RecentObservationsResponse:
        """Most recent observations, newest first."""
        return RecentObservationsResponse(
            observations=loop.aggregator.recent(limit),
            totals=loop.aggregator.totals(),
        )

    return app
