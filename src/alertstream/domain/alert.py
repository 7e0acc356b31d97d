"""Alert aggregate: command validation, state machine and event folding.

The aggregate is three pure functions over an immutable ``AlertState``:

*  ``handle(state, command, clock)`` decides whether *command* is legal
   for *state* and returns the resulting event, or ``None`` for an
   accepted no-op.  It never mutates anything and performs no I/O.
*  ``apply(state, event)`` folds one event into a new state.
*  ``replay(events)`` folds a whole history from empty.

Command routing is an explicit type-keyed table; there is no reflection
or decorator-based dispatch.

Transition rules
----------------
============  ==========================================  =============
Command       Allowed from                                Resulting
============  ==========================================  =============
Create        (no prior state)                            ACTIVE
Update        anything but CLOSED / DELETED               unchanged
Acknowledge   ACTIVE                                      ACKNOWLEDGED
Resolve       ACTIVE, ACKNOWLEDGED                        RESOLVED
Close         anything but CLOSED / DELETED               CLOSED
AddNote       anything but CLOSED / DELETED               unchanged
Assign        anything but CLOSED / DELETED               unchanged
Delete        anything but DELETED                        DELETED
============  ==========================================  =============
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime

from alertstream.core.clock import IClock, WallClock
from alertstream.core.enums import FINAL_STATUSES, AlertSeverity, AlertStatus
from alertstream.core.errors import (
    AlertNotFound,
    InvalidStateTransition,
    ValidationError,
)
from alertstream.core.ids import new_uuid
from alertstream.domain.commands import (
    AcknowledgeAlert,
    AddNote,
    AlertCommand,
    AssignAlert,
    CloseAlert,
    CreateAlert,
    DeleteAlert,
    ResolveAlert,
    UpdateAlert,
)
from alertstream.domain.events import (
    AlertAcknowledged,
    AlertAssigned,
    AlertClosed,
    AlertCreated,
    AlertDeleted,
    AlertEvent,
    AlertResolved,
    AlertUpdated,
    DomainEvent,
    NoteAdded,
)
from alertstream.domain.values import AlertDetails, AlertNote

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "system"
DESCRIPTION_MIN_LENGTH = 5
DESCRIPTION_MAX_LENGTH = 1000

_WALL_CLOCK = WallClock()


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AlertState:
    """Authoritative state of one alert, derived purely from its events."""

    alert_id: uuid.UUID
    severity: AlertSeverity
    description: str
    source: str
    status: AlertStatus
    created_at: datetime
    updated_at: datetime
    event_timestamp: datetime
    details: AlertDetails = field(default_factory=AlertDetails)
    initiated_by: str | None = None
    updated_by: str | None = None

    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    acknowledgement_notes: str | None = None

    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_details: str | None = None

    closed_at: datetime | None = None
    closed_by: str | None = None
    closing_reason: str | None = None

    assignee: str | None = None
    assigned_at: datetime | None = None
    assigned_by: str | None = None

    deleted_at: datetime | None = None
    deleted_by: str | None = None
    deletion_reason: str | None = None

    notes: tuple[AlertNote, ...] = ()
    version: int = 0

    @property
    def is_final(self) -> bool:
        """``True`` once the alert is CLOSED or DELETED."""
        return self.status in FINAL_STATUSES


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def _require_text(value: str | None, what: str) -> None:
    if _blank(value):
        raise ValidationError(f"{what} must not be blank")


def _check_description(description: str) -> None:
    _require_text(description, "Description")
    n = len(description)
    if n < DESCRIPTION_MIN_LENGTH or n > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description must be {DESCRIPTION_MIN_LENGTH}-"
            f"{DESCRIPTION_MAX_LENGTH} characters, got {n}"
        )


def _check_severity(severity: AlertSeverity | str | None) -> None:
    if severity is None:
        raise ValidationError("Severity must not be null")
    try:
        AlertSeverity(severity)
    except ValueError as exc:
        raise ValidationError(f"Unknown severity {severity!r}") from exc


def validate_command(command: AlertCommand) -> None:
    """Reject malformed input before any state is consulted.

    Raises
    ------
    ValidationError
        Missing alert id, unknown command type, or blank mandatory text.
    """
    if command.alert_id is None:
        raise ValidationError(f"Alert ID must not be null for {command.name}")
    if type(command) not in _COMMAND_HANDLERS:
        raise ValidationError(f"Unsupported command {command.name}")

    if isinstance(command, CreateAlert):
        _check_severity(command.severity)
        _check_description(command.description)
        if command.source is not None:
            _require_text(command.source, "Source")
    elif isinstance(command, UpdateAlert):
        if command.severity is not None:
            _check_severity(command.severity)
        if command.description is not None:
            _check_description(command.description)
    elif isinstance(command, AcknowledgeAlert):
        _require_text(command.acknowledged_by, "AcknowledgedBy")
    elif isinstance(command, ResolveAlert):
        _require_text(command.resolved_by, "ResolvedBy")
        _require_text(command.resolution_details, "Resolution details")
    elif isinstance(command, CloseAlert):
        _require_text(command.closed_by, "ClosedBy")
    elif isinstance(command, AddNote):
        _require_text(command.text, "Note text")
        _require_text(command.author, "Note author")
    elif isinstance(command, AssignAlert):
        _require_text(command.assignee, "Assignee")


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------

def _reject(state: AlertState, command: AlertCommand, reason: str = "") -> None:
    raise InvalidStateTransition(state.alert_id, state.status, command.name, reason)


def _require_open(state: AlertState, command: AlertCommand) -> None:
    if state.is_final:
        _reject(state, command, f"alert is already {state.status.value}")


def _handle_create(
    state: AlertState | None, cmd: CreateAlert, now: datetime,
) -> AlertEvent:
    return AlertCreated(
        alert_id=cmd.alert_id,
        timestamp=now,
        sequence=1,
        severity=AlertSeverity(cmd.severity),
        description=cmd.description,
        source=cmd.source if cmd.source is not None else DEFAULT_SOURCE,
        details=AlertDetails(cmd.details),
        initial_status=AlertStatus.ACTIVE,
        event_timestamp=cmd.event_timestamp or now,
        initiated_by=cmd.initiated_by,
    )


def _handle_update(
    state: AlertState, cmd: UpdateAlert, now: datetime,
) -> AlertEvent | None:
    _require_open(state, cmd)

    severity = AlertSeverity(cmd.severity) if cmd.severity is not None else None
    details = AlertDetails(cmd.details) if cmd.details is not None else None

    severity_changed = severity is not None and severity != state.severity
    description_changed = (
        cmd.description is not None and cmd.description != state.description
    )
    details_changed = details is not None and details != state.details

    if not (severity_changed or description_changed or details_changed):
        logger.warning(
            "UpdateAlert for alert %s carries no changes; no event emitted",
            state.alert_id,
        )
        return None

    return AlertUpdated(
        alert_id=state.alert_id,
        timestamp=now,
        sequence=state.version + 1,
        severity=severity if severity_changed else state.severity,
        description=cmd.description if description_changed else state.description,
        details=details if details_changed else state.details,
        updated_by=cmd.updated_by,
    )


def _handle_acknowledge(
    state: AlertState, cmd: AcknowledgeAlert, now: datetime,
) -> AlertEvent:
    if state.status != AlertStatus.ACTIVE:
        _reject(state, cmd, "only ACTIVE alerts can be acknowledged")
    return AlertAcknowledged(
        alert_id=state.alert_id,
        timestamp=now,
        sequence=state.version + 1,
        acknowledged_by=cmd.acknowledged_by,
        notes=cmd.notes,
    )


def _handle_resolve(
    state: AlertState, cmd: ResolveAlert, now: datetime,
) -> AlertEvent:
    if state.status not in (AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED):
        _reject(state, cmd, "only ACTIVE or ACKNOWLEDGED alerts can be resolved")
    return AlertResolved(
        alert_id=state.alert_id,
        timestamp=now,
        sequence=state.version + 1,
        resolved_by=cmd.resolved_by,
        resolution_details=cmd.resolution_details,
    )


def _handle_close(
    state: AlertState, cmd: CloseAlert, now: datetime,
) -> AlertEvent:
    _require_open(state, cmd)
    if state.status != AlertStatus.RESOLVED:
        # Lenient policy: closing an unresolved alert is allowed.
        logger.warning(
            "Closing alert %s from status %s without prior resolution",
            state.alert_id,
            state.status.value,
        )
    return AlertClosed(
        alert_id=state.alert_id,
        timestamp=now,
        sequence=state.version + 1,
        closed_by=cmd.closed_by,
        reason=cmd.reason,
    )


def _handle_add_note(
    state: AlertState, cmd: AddNote, now: datetime,
) -> AlertEvent:
    _require_open(state, cmd)
    note = AlertNote(
        note_id=new_uuid(), text=cmd.text, author=cmd.author, timestamp=now,
    )
    return NoteAdded(
        alert_id=state.alert_id,
        timestamp=now,
        sequence=state.version + 1,
        note=note,
    )


def _handle_assign(
    state: AlertState, cmd: AssignAlert, now: datetime,
) -> AlertEvent | None:
    _require_open(state, cmd)
    if state.assignee == cmd.assignee:
        logger.warning(
            "Alert %s is already assigned to %s; no event emitted",
            state.alert_id,
            cmd.assignee,
        )
        return None
    return AlertAssigned(
        alert_id=state.alert_id,
        timestamp=now,
        sequence=state.version + 1,
        assignee=cmd.assignee,
        assigned_by=cmd.assigned_by,
    )


def _handle_delete(
    state: AlertState, cmd: DeleteAlert, now: datetime,
) -> AlertEvent:
    if state.status == AlertStatus.DELETED:
        _reject(state, cmd, "alert is already DELETED")
    return AlertDeleted(
        alert_id=state.alert_id,
        timestamp=now,
        sequence=state.version + 1,
        deleted_by=cmd.deleted_by,
        reason=cmd.reason,
    )


_COMMAND_HANDLERS: dict[type[AlertCommand], Callable[..., AlertEvent | None]] = {
    CreateAlert: _handle_create,
    UpdateAlert: _handle_update,
    AcknowledgeAlert: _handle_acknowledge,
    ResolveAlert: _handle_resolve,
    CloseAlert: _handle_close,
    AddNote: _handle_add_note,
    AssignAlert: _handle_assign,
    DeleteAlert: _handle_delete,
}


def handle(
    state: AlertState | None,
    command: AlertCommand,
    clock: IClock | None = None,
) -> AlertEvent | None:
    """Decide *command* against *state*.

    Returns the single resulting event, or ``None`` when the command is
    an accepted no-op (unchanged update, re-assignment to the same
    assignee).

    Raises
    ------
    ValidationError
        Malformed command; checked before anything else.
    AlertNotFound
        Non-create command for an alert with no history.
    InvalidStateTransition
        Command not legal for the current status, or create for an
        alert that already exists.
    """
    validate_command(command)
    logger.debug("Handling %s for alert %s", command.name, command.alert_id)

    if isinstance(command, CreateAlert):
        if state is not None:
            _reject(state, command, "alert already exists")
    elif state is None:
        raise AlertNotFound(command.alert_id)

    now = (clock or _WALL_CLOCK).now()
    if state is not None and now < state.updated_at:
        # Keeps updated_at monotonic under clock skew.
        now = state.updated_at

    event = _COMMAND_HANDLERS[type(command)](state, command, now)
    if event is not None:
        logger.info(
            "%s emitted for alert %s", type(event).__name__, event.alert_id,
        )
    return event


# ---------------------------------------------------------------------------
# Event application
# ---------------------------------------------------------------------------

def _on_created(state: AlertState | None, e: AlertCreated) -> AlertState:
    if state is not None:
        raise ValueError(f"AlertCreated for existing alert {state.alert_id}")
    return AlertState(
        alert_id=e.alert_id,
        severity=e.severity,
        description=e.description,
        source=e.source,
        status=e.initial_status,
        created_at=e.timestamp,
        updated_at=e.timestamp,
        event_timestamp=e.event_timestamp,
        details=e.details,
        initiated_by=e.initiated_by,
        version=1,
    )


def _on_updated(state: AlertState, e: AlertUpdated) -> AlertState:
    return replace(
        state,
        severity=e.severity,
        description=e.description,
        details=e.details,
        updated_by=e.updated_by,
    )


def _on_acknowledged(state: AlertState, e: AlertAcknowledged) -> AlertState:
    return replace(
        state,
        status=e.new_status,
        acknowledged_at=e.timestamp,
        acknowledged_by=e.acknowledged_by,
        acknowledgement_notes=e.notes,
    )


def _on_resolved(state: AlertState, e: AlertResolved) -> AlertState:
    return replace(
        state,
        status=e.new_status,
        resolved_at=e.timestamp,
        resolved_by=e.resolved_by,
        resolution_details=e.resolution_details,
    )


def _on_closed(state: AlertState, e: AlertClosed) -> AlertState:
    return replace(
        state,
        status=e.new_status,
        closed_at=e.timestamp,
        closed_by=e.closed_by,
        closing_reason=e.reason,
    )


def _on_note_added(state: AlertState, e: NoteAdded) -> AlertState:
    if e.note is None:
        return state
    return replace(state, notes=state.notes + (e.note,))


def _on_assigned(state: AlertState, e: AlertAssigned) -> AlertState:
    return replace(
        state,
        assignee=e.assignee,
        assigned_at=e.timestamp,
        assigned_by=e.assigned_by,
    )


def _on_deleted(state: AlertState, e: AlertDeleted) -> AlertState:
    return replace(
        state,
        status=e.new_status,
        deleted_at=e.timestamp,
        deleted_by=e.deleted_by,
        deletion_reason=e.reason,
    )


_EVENT_APPLIERS: dict[type[DomainEvent], Callable[..., AlertState]] = {
    AlertUpdated: _on_updated,
    AlertAcknowledged: _on_acknowledged,
    AlertResolved: _on_resolved,
    AlertClosed: _on_closed,
    NoteAdded: _on_note_added,
    AlertAssigned: _on_assigned,
    AlertDeleted: _on_deleted,
}


def apply(state: AlertState | None, event: DomainEvent) -> AlertState:
    """Fold *event* into *state* and return the new state.

    Pure and deterministic.  Every applied event bumps ``version`` and
    moves ``updated_at`` to the event's timestamp.

    Raises
    ------
    ValueError
        The event cannot follow *state* (history is corrupt).
    """
    if isinstance(event, AlertCreated):
        return _on_created(state, event)

    applier = _EVENT_APPLIERS.get(type(event))
    if applier is None:
        raise ValueError(f"Unknown event type {type(event).__name__}")
    if state is None:
        raise ValueError(
            f"{type(event).__name__} for alert {event.alert_id} "
            "precedes its AlertCreated"
        )
    new_state = applier(state, event)
    return replace(
        new_state,
        updated_at=max(state.updated_at, event.timestamp),
        version=state.version + 1,
    )


def replay(
    events: Iterable[DomainEvent],
    state: AlertState | None = None,
) -> AlertState | None:
    """Fold *events* in order, starting from *state* (empty by default)."""
    for event in events:
        state = apply(state, event)
    return state
