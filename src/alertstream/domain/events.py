"""Canonical domain events for the alert lifecycle.

Design invariants
-----------------
1.  Every event is **immutable** (``frozen=True``).
2.  Events are the only source of truth for aggregate state: replaying
    an alert's events in order reconstructs it exactly.
3.  ``event_id`` is a UUID4 generated at creation time; it serves as the
    idempotency / dedup key in the event store.
4.  ``alert_id`` is the aggregate identity and the join key with the
    read model.
5.  Events carry *resulting values*, never diffs, so each one is
    self-sufficient on replay.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union

from alertstream.core.enums import AlertSeverity, AlertStatus
from alertstream.core.ids import new_id as _uuid
from alertstream.core.ids import utc_now as _now
from alertstream.domain.values import AlertDetails, AlertNote

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Immutable base for every alert event.

    Shared fields
    ~~~~~~~~~~~~~
    event_id        Unique identity (UUID4).  Idempotency key.
    alert_id        Aggregate identity.
    timestamp       UTC time the transition took effect.
    sequence        1-based position in the alert's own history.
    """

    event_id: str = field(default_factory=_uuid)
    alert_id: uuid.UUID | None = None
    timestamp: datetime = field(default_factory=_now)
    sequence: int = 0


# =========================================================================
# Lifecycle events
# =========================================================================

@dataclass(frozen=True)
class AlertCreated(DomainEvent):
    """A new alert entered the system in ACTIVE status."""

    severity: AlertSeverity = AlertSeverity.INFO
    description: str = ""
    source: str = ""
    details: AlertDetails = field(default_factory=AlertDetails)
    initial_status: AlertStatus = AlertStatus.ACTIVE
    event_timestamp: datetime = _EPOCH   # origin time at the source
    initiated_by: str | None = None


@dataclass(frozen=True)
class AlertUpdated(DomainEvent):
    """Severity, description or details changed.  Carries full values."""

    severity: AlertSeverity = AlertSeverity.INFO
    description: str = ""
    details: AlertDetails = field(default_factory=AlertDetails)
    updated_by: str | None = None


@dataclass(frozen=True)
class AlertAcknowledged(DomainEvent):
    acknowledged_by: str = ""
    notes: str | None = None
    new_status: AlertStatus = AlertStatus.ACKNOWLEDGED


@dataclass(frozen=True)
class AlertResolved(DomainEvent):
    resolved_by: str = ""
    resolution_details: str = ""
    new_status: AlertStatus = AlertStatus.RESOLVED


@dataclass(frozen=True)
class AlertClosed(DomainEvent):
    closed_by: str = ""
    reason: str | None = None
    new_status: AlertStatus = AlertStatus.CLOSED


@dataclass(frozen=True)
class NoteAdded(DomainEvent):
    """A note was appended.  ``note.timestamp`` equals ``timestamp``."""

    note: AlertNote | None = None


@dataclass(frozen=True)
class AlertAssigned(DomainEvent):
    assignee: str = ""
    assigned_by: str | None = None


@dataclass(frozen=True)
class AlertDeleted(DomainEvent):
    """Logical deletion.  The history itself is never removed."""

    deleted_by: str | None = None
    reason: str | None = None
    new_status: AlertStatus = AlertStatus.DELETED


AlertEvent = Union[
    AlertCreated,
    AlertUpdated,
    AlertAcknowledged,
    AlertResolved,
    AlertClosed,
    NoteAdded,
    AlertAssigned,
    AlertDeleted,
]


#: All alert event types in a deterministic order.
ALL_ALERT_EVENTS: tuple[type[DomainEvent], ...] = (
    AlertCreated,
    AlertUpdated,
    AlertAcknowledged,
    AlertResolved,
    AlertClosed,
    NoteAdded,
    AlertAssigned,
    AlertDeleted,
)
