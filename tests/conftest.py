"""Shared fixtures for the alertstream test suite."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from alertstream.core.clock import SimClock
from alertstream.core.enums import AlertSeverity
from alertstream.domain.alert import AlertState, handle, replay
from alertstream.domain.commands import (
    AcknowledgeAlert,
    AddNote,
    AssignAlert,
    CloseAlert,
    CreateAlert,
    DeleteAlert,
    ResolveAlert,
    UpdateAlert,
)
from alertstream.domain.events import DomainEvent
from alertstream.infrastructure.event_bus import InMemoryEventBus
from alertstream.infrastructure.event_store import InMemoryEventStore
from alertstream.infrastructure.repository import AlertRepository
from alertstream.projection.projector import AlertProjector
from alertstream.projection.read_store import InMemoryReadStore
from alertstream.service import AlertCommandService

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Command helpers
# ---------------------------------------------------------------------------

def make_create(alert_id: uuid.UUID | None = None, **kw) -> CreateAlert:
    defaults = dict(
        alert_id=alert_id or uuid.uuid4(),
        severity=AlertSeverity.HIGH,
        description="disk full",
        source="monitor",
        details={"host": "db-1", "mount": "/var"},
    )
    defaults.update(kw)
    return CreateAlert(**defaults)


def lifecycle_commands(alert_id: uuid.UUID) -> list:
    """Create -> Acknowledge -> Note -> Resolve -> Close for one alert."""
    return [
        make_create(alert_id),
        AcknowledgeAlert(alert_id=alert_id, acknowledged_by="alice", notes="looking"),
        AddNote(alert_id=alert_id, text="rotated logs", author="alice"),
        ResolveAlert(alert_id=alert_id, resolved_by="bob", resolution_details="cleared space"),
        CloseAlert(alert_id=alert_id, closed_by="bob", reason="done"),
    ]


# One valid instance of every command that needs an existing alert.
NON_CREATE_COMMANDS = {
    "update": lambda aid: UpdateAlert(alert_id=aid, description="disk still full"),
    "acknowledge": lambda aid: AcknowledgeAlert(alert_id=aid, acknowledged_by="alice"),
    "resolve": lambda aid: ResolveAlert(alert_id=aid, resolved_by="bob", resolution_details="ok"),
    "close": lambda aid: CloseAlert(alert_id=aid, closed_by="bob"),
    "note": lambda aid: AddNote(alert_id=aid, text="checking", author="alice"),
    "assign": lambda aid: AssignAlert(alert_id=aid, assignee="carol"),
    "delete": lambda aid: DeleteAlert(alert_id=aid, deleted_by="admin"),
}


def decide_all(commands, clock: SimClock) -> tuple[AlertState | None, list[DomainEvent]]:
    """Run commands through the pure aggregate, one second apart."""
    state: AlertState | None = None
    events: list[DomainEvent] = []
    for cmd in commands:
        clock.advance(1)
        event = handle(state, cmd, clock)
        if event is not None:
            events.append(event)
            state = replay([event], state)
    return state, events


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> SimClock:
    return SimClock(T0)


@pytest.fixture
def alert_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def event_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def repository(event_store: InMemoryEventStore) -> AlertRepository:
    return AlertRepository(event_store)


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def service(
    repository: AlertRepository, bus: InMemoryEventBus, clock: SimClock,
) -> AlertCommandService:
    return AlertCommandService(repository, bus, clock=clock)


@pytest.fixture
def read_store() -> InMemoryReadStore:
    return InMemoryReadStore()


@pytest.fixture
def projector(read_store: InMemoryReadStore) -> AlertProjector:
    """Projector with a large timeout so only size and explicit flushes fire."""
    return AlertProjector(read_store, batch_size=100, batch_timeout=3600.0)
