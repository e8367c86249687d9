"""Concrete implementations of the collaborator protocols in rollback_copilot.interfaces."""

from .azure import AzureSlotSwapBackend, is_transient_error
from .http import HttpChangeLog, HttpMetricsSource, WebhookAlertSink
from .local import (
    InMemoryChangeLog,
    InMemoryDecisionLog,
    JsonlChangeLog,
    JsonlDecisionLog,
    LoggingAlertSink,
)

__all__ = [
    "AzureSlotSwapBackend",
    "HttpChangeLog",
    "HttpMetricsSource",
    "InMemoryChangeLog",
    "InMemoryDecisionLog",
    "JsonlChangeLog",
    "JsonlDecisionLog",
    "LoggingAlertSink",
    "WebhookAlertSink",
    "is_transient_error",
]
