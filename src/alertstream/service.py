"""Command service: the write-side entry point.

Routes each command to its aggregate with single-writer semantics:

1. validate the command (before any state is touched),
2. take the per-alert lock,
3. rebuild the aggregate from the event store,
4. decide the command (pure),
5. append the resulting event with an expected-version check,
6. publish it to the event bus.

Projection failures never surface here; the bus isolates handlers.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace

from alertstream.core.clock import IClock, WallClock
from alertstream.domain.alert import DEFAULT_SOURCE, AlertState, handle, validate_command
from alertstream.domain.commands import AlertCommand, CreateAlert
from alertstream.domain.events import AlertEvent
from alertstream.infrastructure.event_bus import IEventBus
from alertstream.infrastructure.repository import AlertRepository

logger = logging.getLogger(__name__)


class AlertCommandService:
    """Serializes commands per alert and persists their events.

    Parameters
    ----------
    repository:
        Event-sourced alert repository.
    bus:
        Bus that fans stored events out to projections.
    clock:
        Time source for event timestamps.  Defaults to wall-clock time.
    default_source:
        Source stamped on ``CreateAlert`` commands that carry none.
    """

    def __init__(
        self,
        repository: AlertRepository,
        bus: IEventBus,
        *,
        clock: IClock | None = None,
        default_source: str = DEFAULT_SOURCE,
    ) -> None:
        self._repository = repository
        self._bus = bus
        self._clock = clock or WallClock()
        self._default_source = default_source
        # Per-alert locks live only while a command holds or awaits them.
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._lock_users: dict[uuid.UUID, int] = defaultdict(int)
        self._commands_handled = 0
        self._noops = 0

    async def send(self, command: AlertCommand) -> AlertEvent | None:
        """Process *command* and return the stored event.

        Returns ``None`` for an accepted no-op.  Raises the domain error
        (``ValidationError``, ``AlertNotFound``,
        ``InvalidStateTransition``, ``ConcurrencyConflict``) otherwise.
        """
        if isinstance(command, CreateAlert) and command.source is None:
            command = replace(command, source=self._default_source)
        validate_command(command)
        async with self._alert_lock(command.alert_id):
            state = await self._repository.find(command.alert_id)
            event = handle(state, command, self._clock)
            self._commands_handled += 1
            if event is None:
                self._noops += 1
                return None
            await self._repository.save(
                event, expected_version=state.version if state else 0,
            )
            # Published under the alert lock to keep per-alert order.
            await self._bus.publish(event)
        return event

    @asynccontextmanager
    async def _alert_lock(self, alert_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.get(alert_id)
        if lock is None:
            lock = self._locks[alert_id] = asyncio.Lock()
        self._lock_users[alert_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[alert_id] -= 1
            if not self._lock_users[alert_id]:
                del self._lock_users[alert_id]
                del self._locks[alert_id]

    async def get_state(self, alert_id: uuid.UUID) -> AlertState:
        """Authoritative state of one alert (raises ``AlertNotFound``)."""
        return await self._repository.load(alert_id)

    @property
    def commands_handled(self) -> int:
        return self._commands_handled

    @property
    def noops(self) -> int:
        return self._noops
