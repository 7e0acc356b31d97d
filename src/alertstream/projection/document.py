"""Read-model document shape for alerts.

Documents are flat JSON dicts keyed by ``str(alert_id)`` using camelCase
field names.  Timestamps are ISO-8601 strings and enums their values,
so a document can be handed to any JSON document store unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from alertstream.domain.alert import AlertState
from alertstream.domain.events import (
    AlertAcknowledged,
    AlertAssigned,
    AlertClosed,
    AlertCreated,
    AlertDeleted,
    AlertResolved,
    AlertUpdated,
    DomainEvent,
)

ALERT_INDEX = "alerts"

_DATE = {"type": "date", "format": "date_optional_time"}

ALERT_MAPPING: dict[str, Any] = {
    "properties": {
        "alertId": {"type": "keyword"},
        "severity": {"type": "keyword"},
        "description": {"type": "text", "analyzer": "standard"},
        "source": {"type": "keyword"},
        "status": {"type": "keyword"},
        "details": {"type": "object"},
        "createdAt": _DATE,
        "updatedAt": _DATE,
        "eventTimestamp": _DATE,
        "initiatedBy": {"type": "keyword"},
        "updatedBy": {"type": "keyword"},
        "acknowledgedAt": _DATE,
        "acknowledgedBy": {"type": "keyword"},
        "acknowledgementNotes": {"type": "text"},
        "resolvedAt": _DATE,
        "resolvedBy": {"type": "keyword"},
        "resolutionDetails": {"type": "text"},
        "closedAt": _DATE,
        "closedBy": {"type": "keyword"},
        "closingReason": {"type": "text"},
        "assignee": {"type": "keyword"},
        "assignedAt": _DATE,
        "assignedBy": {"type": "keyword"},
        "notes": {
            "type": "nested",
            "properties": {
                "noteId": {"type": "keyword"},
                "text": {"type": "text"},
                "author": {"type": "keyword"},
                "timestamp": _DATE,
            },
        },
        "deletedAt": _DATE,
        "deletedBy": {"type": "keyword"},
        "deletionReason": {"type": "text"},
    }
}

ALERT_INDEX_SETTINGS: dict[str, Any] = {
    "number_of_shards": 1,
    "number_of_replicas": 0,
}


@dataclass(frozen=True)
class DocumentUpdate:
    """A partial field update for one document."""

    alert_id: str
    fields: dict[str, Any] = field(default_factory=dict)


def iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


def document_from_created(event: AlertCreated) -> dict[str, Any]:
    """Full initial document for a newly created alert."""
    return {
        "alertId": str(event.alert_id),
        "severity": event.severity.value,
        "description": event.description,
        "source": event.source,
        "status": event.initial_status.value,
        "details": event.details.to_dict(),
        "createdAt": iso(event.timestamp),
        "updatedAt": iso(event.timestamp),
        "eventTimestamp": iso(event.event_timestamp),
        "initiatedBy": event.initiated_by,
        "updatedBy": None,
        "acknowledgedAt": None,
        "acknowledgedBy": None,
        "acknowledgementNotes": None,
        "resolvedAt": None,
        "resolvedBy": None,
        "resolutionDetails": None,
        "closedAt": None,
        "closedBy": None,
        "closingReason": None,
        "assignee": None,
        "assignedAt": None,
        "assignedBy": None,
        "notes": [],
        "deletedAt": None,
        "deletedBy": None,
        "deletionReason": None,
    }


def update_from_event(event: DomainEvent) -> DocumentUpdate | None:
    """Partial update for every event except creation and notes.

    Returns ``None`` for event types that have no field mapping here.
    """
    ts = iso(event.timestamp)
    alert_id = str(event.alert_id)

    if isinstance(event, AlertUpdated):
        fields = {
            "severity": event.severity.value,
            "description": event.description,
            "details": event.details.to_dict(),
            "updatedBy": event.updated_by,
        }
    elif isinstance(event, AlertAcknowledged):
        fields = {
            "status": event.new_status.value,
            "acknowledgedAt": ts,
            "acknowledgedBy": event.acknowledged_by,
            "acknowledgementNotes": event.notes,
        }
    elif isinstance(event, AlertResolved):
        fields = {
            "status": event.new_status.value,
            "resolvedAt": ts,
            "resolvedBy": event.resolved_by,
            "resolutionDetails": event.resolution_details,
        }
    elif isinstance(event, AlertClosed):
        fields = {
            "status": event.new_status.value,
            "closedAt": ts,
            "closedBy": event.closed_by,
            "closingReason": event.reason,
        }
    elif isinstance(event, AlertAssigned):
        fields = {
            "assignee": event.assignee,
            "assignedAt": ts,
            "assignedBy": event.assigned_by,
        }
    elif isinstance(event, AlertDeleted):
        fields = {
            "status": event.new_status.value,
            "deletedAt": ts,
            "deletedBy": event.deleted_by,
            "deletionReason": event.reason,
        }
    else:
        return None

    fields["updatedAt"] = ts
    return DocumentUpdate(alert_id=alert_id, fields=fields)


def document_from_state(state: AlertState) -> dict[str, Any]:
    """Document an up-to-date projection holds for *state*."""
    return {
        "alertId": str(state.alert_id),
        "severity": state.severity.value,
        "description": state.description,
        "source": state.source,
        "status": state.status.value,
        "details": state.details.to_dict(),
        "createdAt": iso(state.created_at),
        "updatedAt": iso(state.updated_at),
        "eventTimestamp": iso(state.event_timestamp),
        "initiatedBy": state.initiated_by,
        "updatedBy": state.updated_by,
        "acknowledgedAt": iso(state.acknowledged_at),
        "acknowledgedBy": state.acknowledged_by,
        "acknowledgementNotes": state.acknowledgement_notes,
        "resolvedAt": iso(state.resolved_at),
        "resolvedBy": state.resolved_by,
        "resolutionDetails": state.resolution_details,
        "closedAt": iso(state.closed_at),
        "closedBy": state.closed_by,
        "closingReason": state.closing_reason,
        "assignee": state.assignee,
        "assignedAt": iso(state.assigned_at),
        "assignedBy": state.assigned_by,
        "notes": [n.to_dict() for n in state.notes],
        "deletedAt": iso(state.deleted_at),
        "deletedBy": state.deleted_by,
        "deletionReason": state.deletion_reason,
    }
