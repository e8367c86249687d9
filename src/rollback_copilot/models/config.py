"""Configuration models for the Rollback Copilot.

Thresholds and configuration for the Health Classifier, the Remediation
Policy Engine and the Rollback Executor. Every threshold carries its unit in
its name (ms, percent, seconds, minutes); nothing is inferred.

Health State Gates:
- UNHEALTHY: average latency above unhealthy_avg_ms
- DEGRADED: p95 latency above degraded_p95_ms
- HEALTHY: otherwise
"""

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings
from whenever import TimeDelta

from rollback_copilot.errors import ConfigurationError


class HealthThresholds(BaseModel):
    """Thresholds for the Health Classifier.

    The error-rate gates come from the dependency health check (20% of
    requests throttled is unhealthy, 5% is degraded). They are disabled by
    default so classification is driven by latency alone.
    """

    unhealthy_avg_ms: float = Field(
        default=1000.0,
        gt=0,
        description="Above this average latency, the app is Unhealthy",
    )
    degraded_p95_ms: float = Field(
        default=2000.0,
        gt=0,
        description="Above this p95 latency, the app is Degraded",
    )
    unhealthy_error_rate: float | None = Field(
        default=None,
        gt=0,
        le=1,
        description="At or above this error fraction, the app is Unhealthy (None disables)",
    )
    degraded_error_rate: float | None = Field(
        default=None,
        gt=0,
        le=1,
        description="At or above this error fraction, the app is Degraded (None disables)",
    )

    @model_validator(mode="after")
    def _error_rates_ordered(self) -> "HealthThresholds":
        if (
            self.unhealthy_error_rate is not None
            and self.degraded_error_rate is not None
            and self.degraded_error_rate > self.unhealthy_error_rate
        ):
            msg = "degraded_error_rate must not exceed unhealthy_error_rate"
            raise ValueError(msg)
        return self


class PolicyThresholds(BaseModel):
    """Thresholds for the Remediation Policy Engine."""

    deviation_threshold_percent: float = Field(
        default=100.0,
        gt=0,
        description="Degraded + deviation above this warns (100 = twice the baseline)",
    )
    deployment_lookback_minutes: float = Field(
        default=30.0,
        gt=0,
        description="How far back a deployment change counts as correlated",
    )
    cooldown_minutes: float = Field(
        default=15.0,
        ge=0,
        description="Minimum time between rollback attempts, successful or not",
    )

    @property
    def deployment_lookback(self) -> TimeDelta:
        return TimeDelta(seconds=self.deployment_lookback_minutes * 60)

    @property
    def cooldown(self) -> TimeDelta:
        return TimeDelta(seconds=self.cooldown_minutes * 60)


class ExecutorSettings(BaseModel):
    """Retry and timeout settings for the Rollback Executor."""

    swap_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Timeout for a single swap call; a timeout is a transient failure",
    )
    swap_max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries after the first attempt, transient failures only",
    )
    backoff_base_seconds: float = Field(default=5.0, ge=0, description="First retry delay")
    backoff_factor: float = Field(default=2.0, ge=1, description="Delay multiplier per retry")

    def backoff_delay(self, retry_index: int) -> float:
        """Delay before retry number retry_index (0-based)."""
        return self.backoff_base_seconds * self.backoff_factor**retry_index


class AzureSlotSettings(BaseModel):
    """Target of the Azure CLI slot-swap backend."""

    resource_group: str | None = Field(default=None, description="Azure resource group")
    app_name: str | None = Field(default=None, description="App Service name")
    source_slot: str = Field(default="staging", description="Slot swapped with the target")
    target_slot: str = Field(default="production", description="Slot serving live traffic")
    az_path: str = Field(default="az", description="Azure CLI executable")

    @property
    def configured(self) -> bool:
        return bool(self.resource_group and self.app_name)


class CopilotConfig(BaseSettings):
    """Main configuration for the Rollback Copilot."""

    # Orchestration
    poll_interval_seconds: float = Field(
        default=60.0, gt=0, description="Interval between evaluation cycles"
    )
    window_capacity: int = Field(
        default=100, ge=1, description="Number of observations in the sliding window"
    )
    baseline_min_samples: int = Field(
        default=20, ge=1, description="Minimum window size to establish a baseline"
    )
    auto_establish_baseline: bool = Field(
        default=True,
        description="Establish the first baseline after warm-up if the window is Healthy",
    )
    slow_observation_ms: float = Field(
        default=500.0, gt=0, description="Observations slower than this are logged"
    )

    # Timeouts for external calls
    metrics_timeout_seconds: float = Field(default=10.0, gt=0)
    change_log_timeout_seconds: float = Field(default=10.0, gt=0)
    alert_timeout_seconds: float = Field(default=5.0, gt=0)

    # Thresholds (nested)
    health: HealthThresholds = Field(default_factory=HealthThresholds)
    policy: PolicyThresholds = Field(default_factory=PolicyThresholds)
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)

    # Adapters
    metrics_endpoint: str | None = Field(
        default=None, description="Base URL serving GET /observations"
    )
    change_log_endpoint: str | None = Field(
        default=None, description="Base URL serving GET/POST /events"
    )
    change_log_path: str | None = Field(default=None, description="JSONL change log file")
    decision_log_path: str | None = Field(default=None, description="JSONL decision log file")
    alert_webhook_url: str | None = Field(default=None, description="Webhook for alerts")
    azure: AzureSlotSettings = Field(default_factory=AzureSlotSettings)

    # Status API
    api_host: str = Field(default="127.0.0.1", description="Status API bind address")
    api_port: int | None = Field(default=None, description="Status API port (None disables)")

    model_config = {"env_prefix": "ROLLBACK_COPILOT_", "env_nested_delimiter": "__"}

    @model_validator(mode="after")
    def _baseline_fits_window(self) -> "CopilotConfig":
        if self.baseline_min_samples > self.window_capacity:
            msg = (
                f"baseline_min_samples ({self.baseline_min_samples}) cannot exceed "
                f"window_capacity ({self.window_capacity})"
            )
            raise ValueError(msg)
        return self


def load_config(**overrides: object) -> CopilotConfig:
    """Load configuration from the environment plus explicit overrides.

    Raises:
        ConfigurationError: if the resulting configuration is invalid.
    """
    try:
        return CopilotConfig(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
