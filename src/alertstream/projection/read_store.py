"""Read store abstraction for alert documents.

The read store is derivative state: everything in it can be rebuilt by
replaying the event store through the projector.  Writes are partial
field updates keyed by alert id; a partial update against a missing
document fails (no implicit upsert).

This module provides:

*  ``IReadStore``: the protocol.
*  ``AlertSearch`` / ``SearchResult``: query parameters and results.
*  ``InMemoryReadStore``: dict-backed implementation for tests and
   local development.

The Elasticsearch implementation lives in
:mod:`alertstream.projection.elasticsearch_store`.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from alertstream.core.enums import AlertSeverity, AlertStatus
from alertstream.core.errors import ProjectionWriteFailure
from alertstream.projection.document import DocumentUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertSearch:
    """Filters for a paginated alert query.  ``None`` means "any"."""

    status: AlertStatus | None = None
    severity: AlertSeverity | None = None
    keyword: str | None = None          # description or source
    created_from: datetime | None = None
    created_to: datetime | None = None
    assignee: str | None = None
    page: int = 0
    size: int = 20


@dataclass
class SearchResult:
    documents: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0


class IReadStore(Protocol):
    """Document store addressable by alert id."""

    async def get(self, alert_id: str) -> dict[str, Any] | None:
        """Return the document or ``None``."""
        ...

    async def upsert(self, alert_id: str, document: dict[str, Any]) -> None:
        """Write a full document, replacing any existing one."""
        ...

    async def update(self, update: DocumentUpdate) -> None:
        """Apply one partial update.  Raises ``ProjectionWriteFailure``."""
        ...

    async def bulk_update(self, updates: Sequence[DocumentUpdate]) -> None:
        """Apply partial updates in order as one write.

        Raises ``ProjectionWriteFailure`` if any item failed.
        """
        ...

    async def recreate_index(self) -> None:
        """Drop the index (if present) and create it empty."""
        ...

    async def search(self, query: AlertSearch) -> SearchResult:
        """Filter, sort newest-first by ``createdAt`` and paginate."""
        ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _matches(doc: dict[str, Any], q: AlertSearch) -> bool:
    if q.status is not None and doc.get("status") != AlertStatus(q.status).value:
        return False
    if q.severity is not None and doc.get("severity") != AlertSeverity(q.severity).value:
        return False
    if q.assignee is not None and doc.get("assignee") != q.assignee:
        return False
    if q.keyword:
        needle = q.keyword.lower()
        haystack = f"{doc.get('description') or ''} {doc.get('source') or ''}".lower()
        if needle not in haystack:
            return False
    if q.created_from is not None or q.created_to is not None:
        created = _parse_ts(doc.get("createdAt"))
        if created is None:
            return False
        if q.created_from is not None and created < q.created_from:
            return False
        if q.created_to is not None and created > q.created_to:
            return False
    return True


class InMemoryReadStore:
    """Dict-backed document store.  No persistence across restarts."""

    def __init__(self) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        self.bulk_calls: int = 0

    async def get(self, alert_id: str) -> dict[str, Any] | None:
        doc = self._docs.get(alert_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def upsert(self, alert_id: str, document: dict[str, Any]) -> None:
        self._docs[alert_id] = copy.deepcopy(document)

    async def update(self, update: DocumentUpdate) -> None:
        doc = self._docs.get(update.alert_id)
        if doc is None:
            raise ProjectionWriteFailure(
                f"Document {update.alert_id} not found for partial update"
            )
        doc.update(copy.deepcopy(update.fields))

    async def bulk_update(self, updates: Sequence[DocumentUpdate]) -> None:
        self.bulk_calls += 1
        missing: list[str] = []
        for upd in updates:
            try:
                await self.update(upd)
            except ProjectionWriteFailure:
                missing.append(upd.alert_id)
        if missing:
            raise ProjectionWriteFailure(
                f"{len(missing)} of {len(updates)} updates failed "
                f"(missing documents: {', '.join(sorted(set(missing)))})",
                count=len(missing),
            )

    async def recreate_index(self) -> None:
        logger.info("Recreating in-memory alert index (%d docs dropped)", len(self._docs))
        self._docs.clear()

    async def search(self, query: AlertSearch) -> SearchResult:
        hits = [d for d in self._docs.values() if _matches(d, query)]
        hits.sort(key=lambda d: d.get("createdAt") or "", reverse=True)
        start = query.page * query.size
        return SearchResult(
            documents=[copy.deepcopy(d) for d in hits[start:start + query.size]],
            total=len(hits),
        )

    async def close(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._docs)
