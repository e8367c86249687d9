"""HTTP adapters built on httpx.AsyncClient.

Each adapter accepts an optional client so callers can share a connection
pool (and tests can inject httpx.MockTransport). Transport and status errors
are raised as TransientSourceFailure; callers decide how to degrade.

Wire format:
    GET  {endpoint}/observations?since=<iso>  -> {"observations": [Observation, ...]}
    GET  {endpoint}/events?since=<iso>        -> {"events": [DeploymentEvent, ...]}
    POST {endpoint}/events                    <- DeploymentEvent (409 = already stored)
    POST {webhook}                            <- RemediationDecision
"""

import logging

import httpx
from pydantic import ValidationError
from whenever import Instant, TimeDelta

from rollback_copilot.errors import TransientSourceFailure
from rollback_copilot.models import DeploymentEvent, Observation, RemediationDecision

logger = logging.getLogger(__name__)


class _HttpAdapter:
    def __init__(
        self,
        endpoint: str,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str, params: dict[str, str]) -> dict:
        try:
            resp = await self._get_client().get(
                f"{self.endpoint}{path}", params=params, timeout=self.timeout_seconds
            )
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            raise TransientSourceFailure(
                f"GET {path} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransientSourceFailure(f"GET {path} failed: {exc}") from exc
        except ValueError as exc:
            raise TransientSourceFailure(f"GET {path} returned invalid JSON") from exc


class HttpMetricsSource(_HttpAdapter):
    """Pulls observations from a metrics endpoint."""

    async def fetch_since(self, since: Instant | None) -> list[Observation]:
        params = {"since": since.format_iso()} if since is not None else {}
        data = await self._get_json("/observations", params)
        try:
            observations = [Observation.model_validate(o) for o in data["observations"]]
        except (KeyError, TypeError, ValidationError) as exc:
            raise TransientSourceFailure(f"Malformed observations payload: {exc}") from exc
        if since is not None:
            observations = [o for o in observations if o.timestamp > since]
        return sorted(observations, key=lambda o: o.timestamp)


class HttpChangeLog(_HttpAdapter):
    """Deployment change log behind a REST endpoint."""

    async def query(self, lookback: TimeDelta) -> list[DeploymentEvent]:
        since = Instant.now() - lookback
        data = await self._get_json("/events", {"since": since.format_iso()})
        try:
            return [DeploymentEvent.model_validate(e) for e in data["events"]]
        except (KeyError, TypeError, ValidationError) as exc:
            raise TransientSourceFailure(f"Malformed events payload: {exc}") from exc

    async def append(self, event: DeploymentEvent) -> None:
        try:
            resp = await self._get_client().post(
                f"{self.endpoint}/events",
                content=event.model_dump_json(),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise TransientSourceFailure(f"POST /events failed: {exc}") from exc

        if resp.status_code == httpx.codes.CONFLICT:
            logger.debug("Event %s already stored", event.event_id)
            return
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransientSourceFailure(f"POST /events returned HTTP {resp.status_code}") from exc


class WebhookAlertSink(_HttpAdapter):
    """Posts each alerting decision as JSON to a webhook URL."""

    async def notify(self, decision: RemediationDecision) -> None:
        resp = await self._get_client().post(
            self.endpoint,
            content=decision.model_dump_json(),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout_seconds,
        )
        resp.raise_for_status()
        logger.info("Alert delivered for decision %s", decision.decision_id)
