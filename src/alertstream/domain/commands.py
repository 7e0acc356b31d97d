"""Commands accepted by the alert aggregate.

One frozen record per requested state transition.  Commands carry
caller intent only; server-assigned values (timestamps, note ids) are
produced by the aggregate when it turns a command into an event.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from alertstream.core.enums import AlertSeverity
from alertstream.core.ids import new_id
from alertstream.domain.values import AlertDetails


@dataclass(frozen=True)
class AlertCommand:
    """Base for every command.  ``alert_id`` routes it to one aggregate."""

    alert_id: uuid.UUID | None = None
    command_id: str = field(default_factory=new_id)

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class CreateAlert(AlertCommand):
    severity: AlertSeverity | None = None
    description: str = ""
    source: str | None = None          # None -> system default
    details: AlertDetails | dict[str, Any] | None = None
    event_timestamp: datetime | None = None
    initiated_by: str | None = None


@dataclass(frozen=True)
class UpdateAlert(AlertCommand):
    """Partial update: ``None`` fields keep the aggregate's current value."""

    severity: AlertSeverity | None = None
    description: str | None = None
    details: AlertDetails | dict[str, Any] | None = None
    updated_by: str | None = None


@dataclass(frozen=True)
class AcknowledgeAlert(AlertCommand):
    acknowledged_by: str = ""
    notes: str | None = None


@dataclass(frozen=True)
class ResolveAlert(AlertCommand):
    resolved_by: str = ""
    resolution_details: str = ""


@dataclass(frozen=True)
class CloseAlert(AlertCommand):
    closed_by: str = ""
    reason: str | None = None


@dataclass(frozen=True)
class AddNote(AlertCommand):
    text: str = ""
    author: str = ""


@dataclass(frozen=True)
class AssignAlert(AlertCommand):
    assignee: str = ""
    assigned_by: str | None = None


@dataclass(frozen=True)
class DeleteAlert(AlertCommand):
    deleted_by: str | None = None
    reason: str | None = None

