"""Event-sourced repository for the alert aggregate.

``load`` replays an alert's history from the event store; ``save``
appends a newly decided event with an optimistic version check.

Snapshots are an optional optimization: with ``snapshot_every=N`` the
repository keeps the folded state every N events and only replays the
tail on the next load.  Correctness never depends on them.
"""

from __future__ import annotations

import logging
import uuid

from alertstream.core.errors import AlertNotFound
from alertstream.domain.alert import AlertState, replay
from alertstream.domain.events import DomainEvent
from alertstream.infrastructure.event_store import IEventStore

logger = logging.getLogger(__name__)


class AlertRepository:
    """Loads and saves alert aggregates through an ``IEventStore``.

    Parameters
    ----------
    store:
        Backing event store.
    snapshot_every:
        Keep an in-memory snapshot each time an alert's version reaches a
        multiple of this value.  ``0`` disables snapshots.
    """

    def __init__(self, store: IEventStore, *, snapshot_every: int = 0) -> None:
        self._store = store
        self._snapshot_every = snapshot_every
        self._snapshots: dict[uuid.UUID, AlertState] = {}

    @property
    def store(self) -> IEventStore:
        return self._store

    async def find(self, alert_id: uuid.UUID) -> AlertState | None:
        """Rebuild the alert, or return ``None`` if it has no history."""
        snapshot = self._snapshots.get(alert_id)
        events = await self._store.load(alert_id)
        if snapshot is not None and snapshot.version <= len(events):
            state = replay(events[snapshot.version:], snapshot)
        else:
            state = replay(events)
        if state is not None:
            self._maybe_snapshot(state)
        return state

    async def load(self, alert_id: uuid.UUID) -> AlertState:
        """Rebuild the alert.

        Raises
        ------
        AlertNotFound
            No events are stored for *alert_id*.
        """
        state = await self.find(alert_id)
        if state is None:
            raise AlertNotFound(alert_id)
        return state

    async def exists(self, alert_id: uuid.UUID) -> bool:
        return await self._store.exists(alert_id)

    async def save(self, event: DomainEvent, expected_version: int) -> None:
        """Append *event*, requiring the alert to be at *expected_version*."""
        await self._store.append(event, expected_version=expected_version)
        logger.debug(
            "Stored %s for alert %s at version %d",
            type(event).__name__,
            event.alert_id,
            expected_version + 1,
        )

    def _maybe_snapshot(self, state: AlertState) -> None:
        if self._snapshot_every <= 0:
            return
        if state.version % self._snapshot_every == 0:
            self._snapshots[state.alert_id] = state

    def snapshot_version(self, alert_id: uuid.UUID) -> int | None:
        """Version of the held snapshot, if any."""
        snap = self._snapshots.get(alert_id)
        return snap.version if snap is not None else None
