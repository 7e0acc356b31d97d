"""Application bootstrap.

Wires the event store, repository, bus, projector, read store, command
service and query service from ``Settings`` and exposes the entry
points the CLI runs.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any

from .core.clock import IClock, WallClock
from .core.config import Settings, load_settings
from .core.enums import EventStoreBackend, ReadStoreBackend
from .domain.alert import AlertState
from .infrastructure.event_bus import InMemoryEventBus
from .infrastructure.event_store import IEventStore, InMemoryEventStore, JsonFileEventStore
from .infrastructure.repository import AlertRepository
from .ingestion.consumer import AlertIngestor, IngestReport
from .observability.logger import setup_logging
from .projection.projector import AlertProjector
from .projection.read_store import InMemoryReadStore, IReadStore
from .query.service import AlertQueryService
from .service import AlertCommandService

logger = logging.getLogger(__name__)


def create_event_store(settings: Settings) -> IEventStore:
    if settings.event_store.backend == EventStoreBackend.JSONL:
        return JsonFileEventStore(settings.event_store.path)
    return InMemoryEventStore()


def create_read_store(settings: Settings) -> IReadStore:
    if settings.read_store == ReadStoreBackend.ELASTICSEARCH:
        from .projection.elasticsearch_store import ElasticsearchReadStore

        return ElasticsearchReadStore.from_config(settings.elasticsearch)
    return InMemoryReadStore()


class AlertApp:
    """All components of one running alert service."""

    def __init__(
        self,
        settings: Settings,
        *,
        event_store: IEventStore | None = None,
        read_store: IReadStore | None = None,
        clock: IClock | None = None,
    ) -> None:
        self.settings = settings
        self.event_store = (
            event_store if event_store is not None else create_event_store(settings)
        )
        self.read_store = (
            read_store if read_store is not None else create_read_store(settings)
        )
        self.repository = AlertRepository(
            self.event_store, snapshot_every=settings.event_store.snapshot_every,
        )
        self.bus = InMemoryEventBus(keep_history=False)
        self.projector = AlertProjector.from_config(self.read_store, settings.projection)
        self.bus.subscribe_projection(self.projector)
        self.commands = AlertCommandService(
            self.repository,
            self.bus,
            clock=clock or WallClock(),
            default_source=settings.default_source,
        )
        self.queries = AlertQueryService(self.read_store)
        self.ingestor = AlertIngestor(self.commands)

    async def start(self) -> None:
        await self.bus.start()
        await self.projector.start()
        logger.info(
            "alertstream started (event_store=%s, read_store=%s)",
            self.settings.event_store.backend.value,
            self.settings.read_store.value,
        )

    async def stop(self) -> None:
        # Bus first, so nothing reaches the projector after its final flush.
        await self.bus.stop()
        try:
            await self.projector.stop()
        finally:
            await self.read_store.close()
        logger.info("Shutdown complete")

    async def rebuild_projection(self) -> int:
        return await self.bus.reset_projection(self.projector, self.event_store)

    async def __aenter__(self) -> AlertApp:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()


def _bootstrap(
    config_path: str | None, overrides: dict[str, Any] | None,
) -> Settings:
    settings = load_settings(config_path=config_path, overrides=overrides)
    setup_logging(settings.observability.log_level, settings.observability.log_format)
    return settings


async def run_ingest(
    path: str | Path,
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> IngestReport:
    """Ingest a JSON Lines file of inbound messages."""
    settings = _bootstrap(config_path, overrides)
    async with AlertApp(settings) as app:
        with open(path, encoding="utf-8") as f:
            report = await app.ingestor.ingest_lines(f)
    logger.info(
        "Ingest finished: %d accepted, %d invalid, %d failed",
        report.accepted,
        report.invalid,
        report.failed,
    )
    return report


async def run_rebuild(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> int:
    """Drop the read model and rebuild it from the event store."""
    settings = _bootstrap(config_path, overrides)
    async with AlertApp(settings) as app:
        return await app.rebuild_projection()


async def run_show(
    alert_id: uuid.UUID,
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> AlertState:
    """Replay one alert from the event store (raises ``AlertNotFound``)."""
    settings = _bootstrap(config_path, overrides)
    app = AlertApp(settings)
    try:
        return await app.repository.load(alert_id)
    finally:
        await app.read_store.close()
