"""Read-side queries over the alert read store.

Every query reads only from the read model, so results may lag the
command side by up to one projection batch.  Lists are sorted newest
first by ``createdAt`` and paginated (``page`` is zero-based).
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from alertstream.core.enums import AlertStatus
from alertstream.core.errors import ValidationError
from alertstream.projection.read_store import AlertSearch, IReadStore, SearchResult

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000


@dataclass
class AlertPage:
    """One page of alert documents."""

    alerts: list[dict[str, Any]] = field(default_factory=list)
    page_number: int = 0
    page_size: int = 20
    total_elements: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.page_size) if self.page_size else 0

    @property
    def last(self) -> bool:
        return self.page_number + 1 >= self.total_pages


def _as_utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def _check_paging(page: int, size: int) -> None:
    if page < 0:
        raise ValidationError(f"Page number must be >= 0, got {page}")
    if size < 1 or size > MAX_PAGE_SIZE:
        raise ValidationError(f"Page size must be 1-{MAX_PAGE_SIZE}, got {size}")


class AlertQueryService:
    """Finders over alert documents."""

    def __init__(self, store: IReadStore) -> None:
        self._store = store

    async def find_by_id(self, alert_id: uuid.UUID | str) -> dict[str, Any] | None:
        logger.debug("Finding alert %s", alert_id)
        return await self._store.get(str(alert_id))

    async def find_all(self, page: int = 0, size: int = 20) -> AlertPage:
        return await self._search(AlertSearch(page=page, size=size))

    async def find_by_status(
        self, status: AlertStatus | str, page: int = 0, size: int = 20,
    ) -> AlertPage:
        try:
            status = AlertStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown status {status!r}") from exc
        return await self._search(AlertSearch(status=status, page=page, size=size))

    async def find_by_keyword(
        self, keyword: str, page: int = 0, size: int = 20,
    ) -> AlertPage:
        """Alerts whose description or source matches *keyword*."""
        if not keyword or not keyword.strip():
            raise ValidationError("Keyword must not be blank")
        return await self._search(
            AlertSearch(keyword=keyword.strip(), page=page, size=size),
        )

    async def find_by_time_range(
        self,
        start: datetime,
        end: datetime,
        page: int = 0,
        size: int = 20,
    ) -> AlertPage:
        """Alerts created within ``[start, end]``."""
        start, end = _as_utc(start), _as_utc(end)
        if start > end:
            raise ValidationError(f"Range start {start} is after end {end}")
        return await self._search(
            AlertSearch(created_from=start, created_to=end, page=page, size=size),
        )

    async def _search(self, query: AlertSearch) -> AlertPage:
        _check_paging(query.page, query.size)
        logger.debug("Alert search %s", query)
        result: SearchResult = await self._store.search(query)
        return AlertPage(
            alerts=result.documents,
            page_number=query.page,
            page_size=query.size,
            total_elements=result.total,
        )
