"""Append-only event store for alert history, replay and audit.

Design invariants
-----------------
1.  ``append()`` is **idempotent** on ``event.event_id``: appending
    the same event twice is a silent no-op.
2.  ``append()`` enforces an optional ``expected_version`` per alert so
    two writers can never interleave on one aggregate.
3.  ``load()`` and ``replay()`` return events in **append order**.
4.  The store is **append-only**: events can never be deleted or
    modified.  ``clear()`` exists only for testing.

This module provides:

*  ``IEventStore``: the protocol.
*  ``InMemoryEventStore``: list-backed implementation for tests and
   local development.
*  ``JsonFileEventStore``: append-to-JSONL-file implementation for
   durable local persistence.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from alertstream.core.enums import AlertSeverity, AlertStatus
from alertstream.core.errors import ConcurrencyConflict
from alertstream.domain.events import ALL_ALERT_EVENTS, DomainEvent
from alertstream.domain.values import AlertDetails, AlertNote

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# JSON helpers (UUID / datetime / enum safe)
# ---------------------------------------------------------------------------

class _EventEncoder(json.JSONEncoder):
    """Handles UUID, datetime and Enum serialization."""

    def default(self, o: Any) -> Any:
        if isinstance(o, uuid.UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, Enum):
            return o.value
        return super().default(o)


def _event_to_dict(event: DomainEvent) -> dict[str, Any]:
    """Serialize a frozen event dataclass to a JSON-safe dict."""
    d: dict[str, Any] = {}
    for f in dataclasses.fields(event):
        value = getattr(event, f.name)
        if isinstance(value, AlertDetails):
            value = value.to_dict()
        elif isinstance(value, AlertNote):
            value = value.to_dict()
        d[f.name] = value
    d["__event_type__"] = type(event).__qualname__
    return d


def _restore(type_name: str, value: Any) -> Any:
    """Rebuild a field value from its JSON form using its annotation."""
    if value is None:
        return None
    if "AlertDetails" in type_name:
        return AlertDetails(value)
    if "AlertNote" in type_name:
        return AlertNote.from_dict(value)
    if "AlertSeverity" in type_name:
        return AlertSeverity(value)
    if "AlertStatus" in type_name:
        return AlertStatus(value)
    if "uuid.UUID" in type_name:
        return uuid.UUID(str(value))
    if "datetime" in type_name and isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def _event_from_dict(
    d: dict[str, Any],
    registry: dict[str, type[DomainEvent]],
) -> DomainEvent | None:
    """Deserialize a dict back into a DomainEvent subclass.

    Returns ``None`` if the event type is unrecognized (forward compat).
    """
    type_name = d.pop("__event_type__", None)
    if type_name is None or type_name not in registry:
        return None
    cls = registry[type_name]

    field_types = {f.name: str(f.type) for f in dataclasses.fields(cls)}
    restored = {
        k: _restore(field_types[k], v)
        for k, v in d.items()
        if k in field_types
    }
    return cls(**restored)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class IEventStore(Protocol):
    """Append-only event log, partitioned by alert id."""

    async def append(
        self,
        event: DomainEvent,
        expected_version: int | None = None,
    ) -> None:
        """Persist an event.  Idempotent on ``event.event_id``.

        Raises ``ConcurrencyConflict`` if *expected_version* is given
        and differs from the alert's stored event count.
        """
        ...

    async def load(self, alert_id: uuid.UUID) -> list[DomainEvent]:
        """Return one alert's history in append order."""
        ...

    async def version(self, alert_id: uuid.UUID) -> int:
        """Number of stored events for *alert_id*."""
        ...

    async def exists(self, alert_id: uuid.UUID) -> bool:
        """``True`` if any event is stored for *alert_id*."""
        ...

    async def replay(
        self,
        event_type: type[DomainEvent] | None = None,
        from_timestamp: datetime | None = None,
    ) -> AsyncIterator[DomainEvent]:
        """Yield every stored event lazily, in append order."""
        ...


def _check_version(
    alert_id: uuid.UUID | None, expected: int | None, actual: int,
) -> None:
    if expected is not None and expected != actual:
        raise ConcurrencyConflict(alert_id, expected, actual)


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEventStore:
    """List-backed event store.  No persistence across restarts.

    Good for: unit tests, local development.
    """

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []
        self._by_alert: dict[uuid.UUID, list[DomainEvent]] = defaultdict(list)
        self._seen_ids: set[str] = set()

    async def append(
        self,
        event: DomainEvent,
        expected_version: int | None = None,
    ) -> None:
        """Append *event*.  No-op if ``event_id`` already stored."""
        if event.event_id in self._seen_ids:
            return
        _check_version(
            event.alert_id, expected_version, len(self._by_alert[event.alert_id]),
        )
        self._seen_ids.add(event.event_id)
        self._events.append(event)
        self._by_alert[event.alert_id].append(event)

    async def load(self, alert_id: uuid.UUID) -> list[DomainEvent]:
        return list(self._by_alert.get(alert_id, ()))

    async def version(self, alert_id: uuid.UUID) -> int:
        return len(self._by_alert.get(alert_id, ()))

    async def exists(self, alert_id: uuid.UUID) -> bool:
        return await self.version(alert_id) > 0

    async def replay(
        self,
        event_type: type[DomainEvent] | None = None,
        from_timestamp: datetime | None = None,
    ) -> AsyncIterator[DomainEvent]:
        """Yield stored events lazily."""
        for event in list(self._events):
            if event_type is not None and type(event) is not event_type:
                continue
            if from_timestamp is not None and event.timestamp < from_timestamp:
                continue
            yield event

    # -- Testing helpers ---------------------------------------------------

    def clear(self) -> None:
        """Remove all events.  Testing only."""
        self._events.clear()
        self._by_alert.clear()
        self._seen_ids.clear()

    def __len__(self) -> int:
        return len(self._events)


# ---------------------------------------------------------------------------
# JSON-Lines file implementation
# ---------------------------------------------------------------------------

class JsonFileEventStore:
    """Append-only JSONL file store.  Durable across restarts.

    Each line is a JSON object with an ``__event_type__`` discriminator.
    Per-alert versions are rebuilt from the file on construction.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._seen_ids: set[str] = set()
        self._versions: dict[str, int] = defaultdict(int)
        self._registry: dict[str, type[DomainEvent]] = {
            cls.__qualname__: cls for cls in ALL_ALERT_EVENTS
        }

        if self._path.exists():
            self._load_index()

    def _load_index(self) -> None:
        """Scan the existing file to populate dedup ids and versions."""
        with self._path.open() as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    d = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping corrupt line in %s", self._path)
                    continue
                eid = d.get("event_id")
                if eid:
                    self._seen_ids.add(eid)
                if d.get("alert_id"):
                    self._versions[d["alert_id"]] += 1

    def _iter_file(self):
        if not self._path.exists():
            return
        with self._path.open() as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    d = json.loads(line)
                except json.JSONDecodeError:
                    continue
                event = _event_from_dict(d, self._registry)
                if event is not None:
                    yield event

    async def append(
        self,
        event: DomainEvent,
        expected_version: int | None = None,
    ) -> None:
        if event.event_id in self._seen_ids:
            return
        key = str(event.alert_id)
        _check_version(event.alert_id, expected_version, self._versions[key])
        line = json.dumps(_event_to_dict(event), cls=_EventEncoder)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a") as f:
            f.write(line + "\n")
        self._seen_ids.add(event.event_id)
        self._versions[key] += 1

    async def load(self, alert_id: uuid.UUID) -> list[DomainEvent]:
        return [e for e in self._iter_file() if e.alert_id == alert_id]

    async def version(self, alert_id: uuid.UUID) -> int:
        return self._versions.get(str(alert_id), 0)

    async def exists(self, alert_id: uuid.UUID) -> bool:
        return await self.version(alert_id) > 0

    async def replay(
        self,
        event_type: type[DomainEvent] | None = None,
        from_timestamp: datetime | None = None,
    ) -> AsyncIterator[DomainEvent]:
        for event in self._iter_file():
            if event_type is not None and type(event) is not event_type:
                continue
            if from_timestamp is not None and event.timestamp < from_timestamp:
                continue
            yield event

    def __len__(self) -> int:
        return len(self._seen_ids)
