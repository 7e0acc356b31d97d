"""Batched alert projector: event stream -> read-store documents.

Creation events are written immediately so a document always exists
before any partial update for it is flushed.  Every other event becomes
a ``DocumentUpdate`` appended to a lock-protected queue, which is
flushed as one bulk write when

*  the queue reaches ``batch_size`` (size trigger), or
*  the background timer finds the queue non-empty and at least
   ``batch_timeout`` seconds have passed since the last flush.

A flush swaps the queue out under the lock, stamps ``last_flush`` at
the swap, releases the lock and only then writes.  Batches are written
one at a time in swap order, so updates for one alert never overtake
each other.  Write failures are logged and counted and never propagate
to the event source.

``stop()`` performs one final flush before stopping the timer, so a
graceful shutdown never drops queued updates.  An ungraceful exit can
still lose the queue; ``rebuild()`` recovers by full replay.

Follows the standard ``start() / stop()`` lifecycle.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from alertstream.core.config import ProjectionConfig
from alertstream.core.errors import ProjectionWriteFailure
from alertstream.domain.events import (
    AlertAcknowledged,
    AlertAssigned,
    AlertClosed,
    AlertCreated,
    AlertDeleted,
    AlertResolved,
    AlertUpdated,
    DomainEvent,
    NoteAdded,
)
from alertstream.projection.document import (
    DocumentUpdate,
    document_from_created,
    iso,
    update_from_event,
)
from alertstream.projection.read_store import IReadStore

logger = logging.getLogger(__name__)


class AlertProjector:
    """Maintains alert documents from the event stream with batched writes.

    Parameters
    ----------
    store:
        Backend implementing :class:`IReadStore`.
    batch_size:
        Flush as soon as this many updates are queued.
    batch_timeout:
        Seconds an update may wait in the queue before a timed flush.
    check_interval:
        Seconds between timer checks.  Defaults to
        ``min(batch_timeout / 2, 5.0)``.
    shutdown_timeout:
        Upper bound in seconds for the final flush and for the timer to
        wind down in :meth:`stop`.
    requeue_on_failure:
        Put a failed batch back at the head of the queue for the next
        flush.  Off by default: persistent failures would grow the queue.
    max_queue_size:
        Cap applied after a re-queue; oldest updates are dropped first.
    """

    def __init__(
        self,
        store: IReadStore,
        *,
        batch_size: int = 100,
        batch_timeout: float = 120.0,
        check_interval: float | None = None,
        shutdown_timeout: float = 10.0,
        requeue_on_failure: bool = False,
        max_queue_size: int = 10_000,
        time_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._batch_size = max(1, batch_size)
        self._batch_timeout = batch_timeout
        self._check_interval = (
            check_interval
            if check_interval is not None
            else min(batch_timeout / 2, 5.0)
        )
        self._shutdown_timeout = shutdown_timeout
        self._requeue_on_failure = requeue_on_failure
        self._max_queue_size = max_queue_size
        self._time = time_fn

        self._queue: list[DocumentUpdate] = []
        self._lock = asyncio.Lock()          # queue: enqueue and swap only
        self._write_lock = asyncio.Lock()    # one batch in flight
        self._last_flush = self._time()
        # Latest notes list per alert that is queued or being written,
        # so consecutive notes never read a stale document.
        self._pending_notes: dict[str, list[dict[str, Any]]] = {}

        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._running = False
        self._stopped = False  # after stop(), updates are written straight through

        # Counters
        self._flush_count = 0
        self._updates_written = 0
        self._failed_batches = 0
        self._failed_writes = 0
        self._updates_dropped = 0

        self._handlers: dict[
            type[DomainEvent], Callable[[Any], Awaitable[None]]
        ] = {
            AlertCreated: self._on_created,
            NoteAdded: self._on_note_added,
            AlertUpdated: self._on_partial,
            AlertAcknowledged: self._on_partial,
            AlertResolved: self._on_partial,
            AlertClosed: self._on_partial,
            AlertAssigned: self._on_partial,
            AlertDeleted: self._on_partial,
        }

    @classmethod
    def from_config(
        cls, store: IReadStore, config: ProjectionConfig,
    ) -> AlertProjector:
        return cls(
            store,
            batch_size=config.batch_size,
            batch_timeout=config.batch_timeout,
            check_interval=config.check_interval,
            shutdown_timeout=config.shutdown_timeout_s,
            requeue_on_failure=config.requeue_on_failure,
            max_queue_size=config.max_queue_size,
        )

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Start the background flush timer."""
        if self._running:
            return
        self._running = True
        self._stopped = False
        self._stop_event.clear()
        self._last_flush = self._time()
        self._task = asyncio.create_task(
            self._timer_loop(), name="alert-projector-timer",
        )
        logger.info(
            "AlertProjector started (batch_size=%d, batch_timeout=%.1fs, "
            "check_interval=%.2fs)",
            self._batch_size,
            self._batch_timeout,
            self._check_interval,
        )

    async def stop(self) -> None:
        """Flush what is queued, then stop the timer.

        Events handled after this point are written immediately, one
        bulk update each, since no timer or final flush will follow.
        """
        self._running = False
        self._stopped = True
        logger.info(
            "Shutting down AlertProjector; flushing %d pending updates",
            len(self._queue),
        )
        try:
            await asyncio.wait_for(self.flush(), timeout=self._shutdown_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Final projection flush exceeded %.1fs", self._shutdown_timeout,
            )

        self._stop_event.set()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=self._shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning("Projection timer did not stop in time; cancelled")
            self._task = None
        logger.info(
            "AlertProjector stopped (flushes=%d, written=%d, failed_batches=%d)",
            self._flush_count,
            self._updates_written,
            self._failed_batches,
        )

    # -- event intake -------------------------------------------------------

    async def handle(self, event: DomainEvent) -> None:
        """Project one event.  Unknown event types are ignored."""
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug("No projection for %s", type(event).__name__)
            return
        await handler(event)

    async def _on_created(self, event: AlertCreated) -> None:
        alert_id = str(event.alert_id)
        try:
            await self._store.upsert(alert_id, document_from_created(event))
        except Exception as exc:
            self._failed_writes += 1
            logger.error(
                "Failed to create document %s: %s", alert_id, exc, exc_info=True,
            )
            return
        logger.debug("Alert document %s created", alert_id)

    async def _on_note_added(self, event: NoteAdded) -> None:
        if event.note is None:
            return
        alert_id = str(event.alert_id)
        notes = self._pending_notes.get(alert_id)
        if notes is None:
            try:
                doc = await self._store.get(alert_id)
            except Exception:
                self._failed_writes += 1
                logger.exception("Failed to read document %s for note", alert_id)
                return
            if doc is None:
                logger.warning(
                    "Document %s not found; note %s not projected",
                    alert_id,
                    event.note.note_id,
                )
                return
            notes = list(doc.get("notes") or [])

        notes = [*notes, event.note.to_dict()]
        self._pending_notes[alert_id] = notes
        await self._enqueue(DocumentUpdate(
            alert_id=alert_id,
            fields={"notes": notes, "updatedAt": iso(event.timestamp)},
        ))

    async def _on_partial(self, event: DomainEvent) -> None:
        update = update_from_event(event)
        if update is not None:
            await self._enqueue(update)

    async def _enqueue(self, update: DocumentUpdate) -> None:
        async with self._lock:
            self._queue.append(update)
            full = len(self._queue) >= self._batch_size or self._stopped
        if full:
            logger.debug("Flushing %d queued updates", len(self._queue))
            await self.flush()

    # -- flushing -----------------------------------------------------------

    async def flush(self) -> int:
        """Write everything queued as one bulk update.

        Returns the number of updates taken from the queue (``0`` when it
        was empty).
        """
        async with self._write_lock:
            async with self._lock:
                if not self._queue:
                    return 0
                batch = self._queue
                self._queue = []
                self._last_flush = self._time()
            await self._write_batch(batch)
        return len(batch)

    async def _write_batch(self, batch: list[DocumentUpdate]) -> None:
        requeued = False
        try:
            await self._store.bulk_update(batch)
        except Exception as exc:
            self._failed_batches += 1
            failure = (
                exc if isinstance(exc, ProjectionWriteFailure)
                else ProjectionWriteFailure(str(exc), count=len(batch))
            )
            logger.error(
                "Projection flush of %d updates failed: %s",
                len(batch),
                failure,
                exc_info=exc,
            )
            if self._requeue_on_failure:
                await self._requeue(batch)
                requeued = True
        else:
            self._flush_count += 1
            self._updates_written += len(batch)
            logger.info("Flushed %d updates to read store", len(batch))
        finally:
            if not requeued:
                self._forget_notes(batch)

    async def _requeue(self, batch: list[DocumentUpdate]) -> None:
        async with self._lock:
            self._queue[:0] = batch
            overflow = len(self._queue) - self._max_queue_size
            if overflow > 0:
                del self._queue[:overflow]
                self._updates_dropped += overflow
                logger.error(
                    "Projection queue overflow: dropped %d oldest updates "
                    "(capped at %d)",
                    overflow,
                    self._max_queue_size,
                )

    def _forget_notes(self, batch: list[DocumentUpdate]) -> None:
        for upd in batch:
            notes = upd.fields.get("notes")
            if notes is not None and self._pending_notes.get(upd.alert_id) is notes:
                del self._pending_notes[upd.alert_id]

    async def _timer_loop(self) -> None:
        """Background loop checking the batch timeout every interval."""
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._check_interval,
                )
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self._timed_flush()
            except Exception:
                logger.exception("Projection timer error")

    async def _timed_flush(self) -> None:
        async with self._lock:
            due = (
                bool(self._queue)
                and self._time() - self._last_flush >= self._batch_timeout
            )
            pending = len(self._queue)
        if due:
            logger.info(
                "Batch timeout %.1fs reached; flushing %d updates",
                self._batch_timeout,
                pending,
            )
            await self.flush()

    # -- reset / rebuild ----------------------------------------------------

    async def reset(self) -> None:
        """Drop and recreate the index, discarding pending updates."""
        async with self._write_lock:
            async with self._lock:
                dropped = len(self._queue)
                self._queue = []
                self._pending_notes.clear()
                self._last_flush = self._time()
            if dropped:
                logger.warning("Reset discarded %d pending updates", dropped)
            await self._store.recreate_index()

    async def rebuild(self, events: AsyncIterator[DomainEvent]) -> int:
        """Reset, replay *events* through the handlers and flush.

        Returns the number of events replayed.
        """
        await self.reset()
        count = 0
        async for event in events:
            await self.handle(event)
            count += 1
        await self.flush()
        logger.info("Projection rebuilt from %d events", count)
        return count

    # -- observability ------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def pending(self) -> list[DocumentUpdate]:
        return list(self._queue)

    @property
    def flush_count(self) -> int:
        return self._flush_count

    @property
    def updates_written(self) -> int:
        return self._updates_written

    @property
    def failed_batches(self) -> int:
        return self._failed_batches

    @property
    def failed_writes(self) -> int:
        return self._failed_writes

    @property
    def updates_dropped(self) -> int:
        return self._updates_dropped
