"""Tests for the batched ``AlertProjector``.

Covers:
- Immediate creation writes and queued partial updates.
- Size-triggered and timer-triggered flushes.
- Graceful shutdown drains the queue with exactly one final flush.
- Write failures are isolated, counted and optionally re-queued.
- Several notes for one alert inside one batch.
- reset / rebuild from the event store.
"""

from __future__ import annotations

import asyncio
import uuid

import pytest

from alertstream.core.config import ProjectionConfig
from alertstream.core.enums import AlertStatus
from alertstream.core.errors import ProjectionWriteFailure
from alertstream.domain.commands import AddNote, AssignAlert
from alertstream.projection.document import document_from_state
from alertstream.projection.projector import AlertProjector
from alertstream.projection.read_store import InMemoryReadStore

from conftest import decide_all, lifecycle_commands, make_create


class FlakyReadStore(InMemoryReadStore):
    """Fails the first *failures* bulk writes."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.failures = failures

    async def bulk_update(self, updates):
        if self.failures > 0:
            self.failures -= 1
            self.bulk_calls += 1
            raise ProjectionWriteFailure("cluster unavailable", count=len(updates))
        await super().bulk_update(updates)


class FakeTime:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def _project(projector: AlertProjector, events) -> None:
    for event in events:
        await projector.handle(event)


async def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.005)
    return predicate()


# ===========================================================================
# Intake
# ===========================================================================

class TestIntake:
    @pytest.mark.asyncio
    async def test_created_written_immediately(self, projector, read_store, alert_id, clock):
        _, events = decide_all([make_create(alert_id)], clock)
        await projector.handle(events[0])
        doc = await read_store.get(str(alert_id))
        assert doc is not None
        assert doc["status"] == "ACTIVE"
        assert doc["severity"] == "HIGH"
        assert doc["notes"] == []
        assert projector.queue_size == 0
        assert read_store.bulk_calls == 0

    @pytest.mark.asyncio
    async def test_partial_updates_are_queued(self, projector, read_store, alert_id, clock):
        _, events = decide_all(lifecycle_commands(alert_id)[:2], clock)
        await _project(projector, events)
        assert projector.queue_size == 1
        doc = await read_store.get(str(alert_id))
        assert doc["status"] == "ACTIVE"

        assert await projector.flush() == 1
        doc = await read_store.get(str(alert_id))
        assert doc["status"] == "ACKNOWLEDGED"
        assert doc["acknowledgedBy"] == "alice"

    @pytest.mark.asyncio
    async def test_empty_flush_is_noop(self, projector, read_store):
        assert await projector.flush() == 0
        assert read_store.bulk_calls == 0
        assert projector.flush_count == 0


# ===========================================================================
# Size and timer triggers
# ===========================================================================

class TestTriggers:
    @pytest.mark.asyncio
    async def test_size_trigger(self, read_store, alert_id, clock):
        projector = AlertProjector(read_store, batch_size=2, batch_timeout=3600.0)
        _, events = decide_all(lifecycle_commands(alert_id), clock)
        await projector.handle(events[0])      # create: immediate
        await projector.handle(events[1])      # ack: queued
        assert read_store.bulk_calls == 0
        await projector.handle(events[2])      # note: reaches batch_size
        assert read_store.bulk_calls == 1
        assert projector.queue_size == 0
        assert projector.updates_written == 2

    @pytest.mark.asyncio
    async def test_timer_flushes_after_timeout(self, read_store, alert_id, clock):
        fake = FakeTime()
        projector = AlertProjector(
            read_store,
            batch_size=100,
            batch_timeout=10.0,
            check_interval=0.01,
            time_fn=fake,
        )
        _, events = decide_all(lifecycle_commands(alert_id)[:2], clock)
        await projector.start()
        try:
            await _project(projector, events)
            await asyncio.sleep(0.05)
            assert projector.queue_size == 1       # timeout not reached yet

            fake.now = 10.0
            assert await _wait_for(lambda: projector.queue_size == 0)
            assert read_store.bulk_calls == 1
            doc = await read_store.get(str(alert_id))
            assert doc["status"] == "ACKNOWLEDGED"
        finally:
            await projector.stop()

    @pytest.mark.asyncio
    async def test_timer_skips_empty_queue(self, read_store):
        fake = FakeTime()
        projector = AlertProjector(
            read_store, batch_timeout=1.0, check_interval=0.01, time_fn=fake,
        )
        await projector.start()
        fake.now = 100.0
        await asyncio.sleep(0.05)
        await projector.stop()
        assert read_store.bulk_calls == 0

    @pytest.mark.asyncio
    async def test_flush_resets_timeout_window(self, read_store, alert_id, clock):
        fake = FakeTime()
        projector = AlertProjector(
            read_store, batch_timeout=10.0, check_interval=0.01, time_fn=fake,
        )
        _, events = decide_all(lifecycle_commands(alert_id), clock)
        await projector.start()
        try:
            await _project(projector, events[:2])
            fake.now = 10.0
            assert await _wait_for(lambda: projector.queue_size == 0)

            await projector.handle(events[2])
            fake.now = 15.0                         # only 5s since last flush
            await asyncio.sleep(0.05)
            assert projector.queue_size == 1
        finally:
            await projector.stop()

    def test_default_check_interval(self, read_store):
        projector = AlertProjector(read_store, batch_timeout=4.0)
        assert projector._check_interval == 2.0
        projector = AlertProjector(read_store, batch_timeout=120.0)
        assert projector._check_interval == 5.0

    def test_from_config(self, read_store):
        config = ProjectionConfig(batch_size=7, batch_timeout_ms=2000)
        projector = AlertProjector.from_config(read_store, config)
        assert projector._batch_size == 7
        assert projector._batch_timeout == 2.0
        assert projector._check_interval == 1.0


# ===========================================================================
# Shutdown
# ===========================================================================

class TestShutdown:
    @pytest.mark.asyncio
    async def test_stop_flushes_exactly_once(self, projector, read_store, alert_id, clock):
        await projector.start()
        _, events = decide_all(lifecycle_commands(alert_id), clock)
        await _project(projector, events)
        assert projector.queue_size == 4

        await projector.stop()
        assert read_store.bulk_calls == 1
        assert projector.flush_count == 1
        assert projector.queue_size == 0
        assert not projector.is_running
        doc = await read_store.get(str(alert_id))
        assert doc["status"] == "CLOSED"
        assert doc["closedBy"] == "bob"

    @pytest.mark.asyncio
    async def test_stop_with_empty_queue(self, projector, read_store):
        await projector.start()
        await projector.stop()
        assert read_store.bulk_calls == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self, projector, read_store, alert_id, clock):
        _, events = decide_all(lifecycle_commands(alert_id)[:2], clock)
        await _project(projector, events)
        await projector.stop()
        assert projector.queue_size == 0
        assert read_store.bulk_calls == 1

    @pytest.mark.asyncio
    async def test_events_after_stop_are_written_through(
        self, projector, read_store, alert_id, clock,
    ):
        _, events = decide_all(lifecycle_commands(alert_id)[:2], clock)
        await projector.start()
        await projector.handle(events[0])
        await projector.stop()

        await projector.handle(events[1])
        assert projector.queue_size == 0
        assert read_store.bulk_calls == 1
        doc = await read_store.get(str(alert_id))
        assert doc["status"] == "ACKNOWLEDGED"

    @pytest.mark.asyncio
    async def test_restart_batches_again(self, projector, alert_id, clock):
        _, events = decide_all(lifecycle_commands(alert_id)[:2], clock)
        await projector.stop()
        await projector.start()
        try:
            await _project(projector, events)
            assert projector.queue_size == 1
        finally:
            await projector.stop()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, projector):
        await projector.start()
        task = projector._task
        await projector.start()
        assert projector._task is task
        await projector.stop()


# ===========================================================================
# Failures
# ===========================================================================

class TestFailures:
    @pytest.mark.asyncio
    async def test_failed_flush_is_isolated(self, alert_id, clock):
        store = FlakyReadStore(failures=1)
        projector = AlertProjector(store, batch_size=100, batch_timeout=3600.0)
        _, events = decide_all(lifecycle_commands(alert_id)[:2], clock)
        await _project(projector, events)

        assert await projector.flush() == 1       # no exception
        assert projector.failed_batches == 1
        assert projector.flush_count == 0
        assert projector.queue_size == 0          # dropped without requeue

    @pytest.mark.asyncio
    async def test_requeue_on_failure(self, alert_id, clock):
        store = FlakyReadStore(failures=1)
        projector = AlertProjector(
            store, batch_size=100, batch_timeout=3600.0, requeue_on_failure=True,
        )
        _, events = decide_all(lifecycle_commands(alert_id)[:3], clock)
        await _project(projector, events)

        await projector.flush()
        assert projector.queue_size == 2
        await projector.flush()
        assert projector.queue_size == 0
        assert projector.flush_count == 1
        doc = await store.get(str(alert_id))
        assert doc["status"] == "ACKNOWLEDGED"
        assert len(doc["notes"]) == 1

    @pytest.mark.asyncio
    async def test_requeue_respects_cap(self, clock):
        store = FlakyReadStore(failures=1)
        projector = AlertProjector(
            store,
            batch_size=100,
            batch_timeout=3600.0,
            requeue_on_failure=True,
            max_queue_size=2,
        )
        alert_id = uuid.uuid4()
        _, events = decide_all(
            [make_create(alert_id)]
            + [AssignAlert(alert_id=alert_id, assignee=f"user{i}") for i in range(4)],
            clock,
        )
        await _project(projector, events)
        await projector.flush()
        assert projector.queue_size == 2
        assert projector.updates_dropped == 2
        # Newest updates survive.
        assert [u.fields["assignee"] for u in projector.pending] == ["user2", "user3"]

    @pytest.mark.asyncio
    async def test_update_for_missing_document_fails_batch(self, projector, alert_id, clock):
        _, events = decide_all(lifecycle_commands(alert_id)[:2], clock)
        await projector.handle(events[1])           # create never projected
        await projector.flush()
        assert projector.failed_batches == 1

    @pytest.mark.asyncio
    async def test_create_failure_counted(self, alert_id, clock):
        class BrokenStore(InMemoryReadStore):
            async def upsert(self, alert_id, document):
                raise ProjectionWriteFailure("index closed")

        projector = AlertProjector(BrokenStore())
        _, events = decide_all([make_create(alert_id)], clock)
        await projector.handle(events[0])
        assert projector.failed_writes == 1


# ===========================================================================
# Notes
# ===========================================================================

class TestNotes:
    @pytest.mark.asyncio
    async def test_multiple_notes_in_one_batch(self, projector, read_store, alert_id, clock):
        commands = [make_create(alert_id)] + [
            AddNote(alert_id=alert_id, text=f"note {i}", author="alice") for i in range(3)
        ]
        state, events = decide_all(commands, clock)
        await _project(projector, events)
        await projector.flush()
        doc = await read_store.get(str(alert_id))
        assert [n["text"] for n in doc["notes"]] == ["note 0", "note 1", "note 2"]
        assert doc == document_from_state(state)

    @pytest.mark.asyncio
    async def test_notes_across_batches(self, read_store, alert_id, clock):
        projector = AlertProjector(read_store, batch_size=1, batch_timeout=3600.0)
        commands = [make_create(alert_id)] + [
            AddNote(alert_id=alert_id, text=f"note {i}", author="alice") for i in range(3)
        ]
        _, events = decide_all(commands, clock)
        await _project(projector, events)
        doc = await read_store.get(str(alert_id))
        assert len(doc["notes"]) == 3
        assert projector._pending_notes == {}

    @pytest.mark.asyncio
    async def test_note_for_missing_document_skipped(self, projector, alert_id, clock, caplog):
        commands = [make_create(alert_id), AddNote(alert_id=alert_id, text="hello", author="a")]
        _, events = decide_all(commands, clock)
        with caplog.at_level("WARNING", logger="alertstream.projection.projector"):
            await projector.handle(events[1])
        assert projector.queue_size == 0
        assert "not found" in caplog.text


# ===========================================================================
# Reset / rebuild
# ===========================================================================

class TestRebuild:
    @pytest.mark.asyncio
    async def test_reset_discards_pending(self, projector, read_store, alert_id, clock):
        _, events = decide_all(lifecycle_commands(alert_id)[:2], clock)
        await _project(projector, events)
        await projector.reset()
        assert projector.queue_size == 0
        assert len(read_store) == 0

    @pytest.mark.asyncio
    async def test_rebuild_matches_replayed_state(self, projector, read_store, event_store, clock):
        states = {}
        for _ in range(3):
            alert_id = uuid.uuid4()
            state, events = decide_all(lifecycle_commands(alert_id), clock)
            states[alert_id] = state
            for event in events:
                await event_store.append(event)

        # Stale garbage that the rebuild must wipe.
        await read_store.upsert("stale", {"alertId": "stale"})

        count = await projector.rebuild(event_store.replay())
        assert count == 15
        assert len(read_store) == 3
        for alert_id, state in states.items():
            doc = await read_store.get(str(alert_id))
            assert doc == document_from_state(state)
            assert doc["status"] == AlertStatus.CLOSED.value

    @pytest.mark.asyncio
    async def test_concurrent_handlers_lose_nothing(self, read_store, clock):
        projector = AlertProjector(read_store, batch_size=7, batch_timeout=3600.0)
        per_alert = {}
        for _ in range(10):
            alert_id = uuid.uuid4()
            per_alert[alert_id] = decide_all(lifecycle_commands(alert_id), clock)

        # Creations first, then the remaining streams interleaved concurrently.
        await asyncio.gather(*(projector.handle(evs[0]) for _, evs in per_alert.values()))
        await asyncio.gather(*(
            _project(projector, evs[1:]) for _, evs in per_alert.values()
        ))
        await projector.stop()

        assert projector.failed_batches == 0
        for alert_id, (state, _) in per_alert.items():
            assert await read_store.get(str(alert_id)) == document_from_state(state)
