"""Custom exception hierarchy for the alerting platform."""

from __future__ import annotations

from typing import Any


class AlertingError(Exception):
    """Base exception for all alerting platform errors."""


# --- Configuration ---
class ConfigError(AlertingError):
    """Invalid or missing configuration."""


# --- Command side ---
class CommandError(AlertingError):
    """A command was rejected by the write model."""


class ValidationError(CommandError):
    """Malformed command input (missing identifier, blank mandatory text)."""


class InvalidStateTransition(CommandError):
    """Command is not legal for the alert's current status."""

    def __init__(self, alert_id: Any, status: Any, command: str, reason: str = ""):
        self.alert_id = alert_id
        self.status = status
        self.command = command
        self.reason = reason
        status_name = getattr(status, "value", status)
        msg = f"{command} not allowed for alert {alert_id} in status {status_name}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class AlertNotFound(CommandError):
    """No event history exists for the referenced alert."""

    def __init__(self, alert_id: Any):
        self.alert_id = alert_id
        super().__init__(f"Alert {alert_id} not found")


class ConcurrencyConflict(CommandError):
    """Expected aggregate version did not match the stored version."""

    def __init__(self, alert_id: Any, expected: int, actual: int):
        self.alert_id = alert_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Alert {alert_id}: expected version {expected}, found {actual}"
        )


# --- Projection side ---
class ProjectionError(AlertingError):
    """Read-model maintenance error."""


class ProjectionWriteFailure(ProjectionError):
    """A single or bulk write to the read store failed."""

    def __init__(self, message: str, count: int = 1):
        self.count = count
        super().__init__(message)
