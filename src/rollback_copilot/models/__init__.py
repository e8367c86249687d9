"""Pydantic models for the Rollback Copilot.

Model Taxonomy:
- Observations: raw latency/outcome samples and the snapshots reduced from them
- Health: the classified state of the live window
- Deployments: change events that can explain a regression
- Remediation: decisions, the process-wide rollback state, swap results
- Config: thresholds and settings (pydantic-settings root: CopilotConfig)

Key Principle: "Rules decide"
- Health state is determined by deterministic rules in the state machine
- Remediation actions are determined by the deterministic policy table
"""

from .api_responses import (
    BaselineResponse,
    CheckEntry,
    DecisionsResponse,
    HealthResponse,
    IngestResponse,
    RecentObservationsResponse,
    StatusResponse,
)
from .config import (
    AzureSlotSettings,
    CopilotConfig,
    ExecutorSettings,
    HealthThresholds,
    PolicyThresholds,
    load_config,
)
from .deployments import (
    CORRELATABLE_KINDS,
    DeploymentEvent,
    DeploymentEventKind,
    DeploymentOutcome,
)
from .health import HealthReport, HealthState
from .observations import AggregatorTotals, Observation, StatsSnapshot
from .remediation import (
    RemediationAction,
    RemediationDecision,
    RemediationStateSnapshot,
    RollbackOutcome,
    RollbackStatus,
    SwapResult,
)

__all__ = [
    # Observations
    "AggregatorTotals",
    "Observation",
    "StatsSnapshot",
    # Health
    "HealthReport",
    "HealthState",
    # Deployments
    "CORRELATABLE_KINDS",
    "DeploymentEvent",
    "DeploymentEventKind",
    "DeploymentOutcome",
    # Remediation
    "RemediationAction",
    "RemediationDecision",
    "RemediationStateSnapshot",
    "RollbackOutcome",
    "RollbackStatus",
    "SwapResult",
    # Config
    "AzureSlotSettings",
    "CopilotConfig",
    "ExecutorSettings",
    "HealthThresholds",
    "PolicyThresholds",
    "load_config",
    # API responses
    "BaselineResponse",
    "CheckEntry",
    "DecisionsResponse",
    "HealthResponse",
    "IngestResponse",
    "RecentObservationsResponse",
    "StatusResponse",
]
