"""Error taxonomy for the Rollback Copilot.

Propagation policy:
- Nothing below the OrchestrationLoop is allowed to terminate the process.
  Collaborator failures are caught at the loop, correlator and executor
  boundaries and turned into logged, audited results.
- ConfigurationError is the only error allowed to abort, and only at startup.
"""


class CopilotError(Exception):
    """Base class for every error raised by the Rollback Copilot."""


class InvalidObservation(CopilotError, ValueError):
    """An observation was rejected by the Sample Aggregator.

    Raised for negative or non-finite latency and for timestamps earlier
    than the last recorded sample. Callers reject-and-log; the loop continues.
    """


class InsufficientSamples(CopilotError):
    """A baseline cannot be established from too few samples."""

    def __init__(self, sample_count: int, required: int) -> None:
        self.sample_count = sample_count
        self.required = required
        super().__init__(
            f"Baseline needs at least {required} samples, window has {sample_count}"
        )


class TransientSourceFailure(CopilotError):
    """A metrics source or change log is temporarily unreachable."""


class RollbackFailed(CopilotError):
    """A rollback attempt ended in a terminal failure.

    Always escalated to the alert sink with the full cause.
    """

    def __init__(self, cause: str) -> None:
        self.cause = cause
        super().__init__(f"Rollback failed: {cause}")


class EvaluationError(CopilotError):
    """Unexpected failure in the decision path, caught at the loop boundary.

    stage names the cycle step that failed (polling, evaluation); cause is
    the original exception.
    """

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} failed: {type(cause).__name__}: {cause}")


class ConfigurationError(CopilotError):
    """Fatal misconfiguration detected at startup."""
