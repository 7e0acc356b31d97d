"""Event bus abstraction and in-memory implementation.

Design goals
------------
1.  **Type-routed dispatching**: subscribers register for a concrete
    ``DomainEvent`` subclass.  When an event is published the bus routes
    it to every handler whose registered type matches ``type(event)``.
2.  **Ordered delivery**: handlers are awaited one event at a time in
    publish order, so per-alert event order is preserved.
3.  **Handler isolation**: a failing handler is logged, counted and
    dead-lettered; it never fails the publisher (the command path).
4.  **Reset signal**: ``reset_projection()`` tells a projection to discard its
    read model and rebuild it by replaying the full event store.

This module provides:

*  ``IEventBus``: the protocol (interface).
*  ``IProjection``: what the bus needs from a resettable projection.
*  ``InMemoryEventBus``: deterministic in-process implementation.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol, runtime_checkable

from alertstream.domain.events import ALL_ALERT_EVENTS, DomainEvent
from alertstream.infrastructure.event_store import IEventStore

logger = logging.getLogger(__name__)

# Type alias for async event handlers.
EventHandler = Callable[[DomainEvent], Awaitable[None]]


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class IProjection(Protocol):
    """A read-model builder that can be rebuilt from scratch."""

    async def handle(self, event: DomainEvent) -> None: ...

    async def rebuild(self, events: AsyncIterator[DomainEvent]) -> int: ...


@runtime_checkable
class IEventBus(Protocol):
    """Publish/subscribe bus for alert ``DomainEvent`` types."""

    async def publish(self, event: DomainEvent) -> None:
        """Deliver *event* to all matching subscribers, in order."""
        ...

    def subscribe(
        self,
        event_type: type[DomainEvent],
        handler: EventHandler,
    ) -> None:
        """Register *handler* for events of exactly *event_type*."""
        ...

    async def reset_projection(
        self, projection: IProjection, store: IEventStore,
    ) -> int:
        """Rebuild *projection* by replaying every event in *store*."""
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEventBus:
    """Deterministic, in-process event bus.

    Parameters
    ----------
    keep_history
        When ``True`` (default) every published event is retained for
        inspection via ``get_history()``.
    """

    def __init__(self, *, keep_history: bool = True) -> None:
        self._handlers: dict[
            type[DomainEvent], list[EventHandler]
        ] = defaultdict(list)
        self._history: list[DomainEvent] = []
        self._keep_history = keep_history
        self._error_counts: dict[str, int] = defaultdict(int)
        self._dead_letters: list[tuple[DomainEvent, str]] = []
        self._messages_processed: int = 0
        self._running = False
        self._closed = False  # set by stop()

    # -- Lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        self._running = True
        self._closed = False

    async def stop(self) -> None:
        """Stop delivering.  Later publishes are dead-lettered."""
        self._running = False
        self._closed = True

    # -- Core API ----------------------------------------------------------

    async def publish(self, event: DomainEvent) -> None:
        """Publish *event* to all subscribed handlers.

        Handler exceptions are swallowed after logging; the event is
        recorded as a dead letter for that handler.
        """
        event_cls = type(event)
        if self._closed:
            self._dead_letters.append((event, "bus stopped"))
            logger.warning(
                "Bus stopped; %s for alert %s not delivered",
                event_cls.__name__,
                event.alert_id,
            )
            return
        if self._keep_history:
            self._history.append(event)

        for handler in self._handlers.get(event_cls, []):
            try:
                await handler(event)
                self._messages_processed += 1
            except Exception as exc:
                key = event_cls.__name__
                self._error_counts[key] += 1
                self._dead_letters.append((event, str(exc)))
                logger.exception(
                    "Handler error on %s for alert %s", key, event.alert_id,
                )

    def subscribe(
        self,
        event_type: type[DomainEvent],
        handler: EventHandler,
    ) -> None:
        """Register *handler* for *event_type*."""
        self._handlers[event_type].append(handler)

    def subscribe_projection(self, projection: IProjection) -> None:
        """Register *projection* for every alert event type."""
        for event_type in ALL_ALERT_EVENTS:
            self.subscribe(event_type, projection.handle)

    async def reset_projection(
        self, projection: IProjection, store: IEventStore,
    ) -> int:
        """Discard *projection*'s read model and replay the full history."""
        logger.info("Reset requested for %s", type(projection).__name__)
        count = await projection.rebuild(store.replay())
        logger.info(
            "%s rebuilt from %d events", type(projection).__name__, count,
        )
        return count

    # -- Observability -----------------------------------------------------

    def get_history(
        self,
        event_type: type[DomainEvent] | None = None,
    ) -> list[DomainEvent]:
        """Return published events, optionally filtered."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if type(e) is event_type]

    def clear_history(self) -> None:
        """Clear the event history (testing helper)."""
        self._history.clear()

    def get_error_counts(self) -> dict[str, int]:
        return dict(self._error_counts)

    @property
    def dead_letters(self) -> list[tuple[DomainEvent, str]]:
        return list(self._dead_letters)

    @property
    def messages_processed(self) -> int:
        return self._messages_processed

    @property
    def is_running(self) -> bool:
        return self._running
