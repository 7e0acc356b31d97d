"""Elasticsearch-backed read store.

Uses the official async client (``elasticsearch[async]``).  Partial
updates are sent with ``doc_as_upsert`` off and ``retry_on_conflict``
so concurrent updates to one document are retried by the cluster; bulk
updates go through :func:`elasticsearch.helpers.async_bulk`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from elastic_transport import TransportError
from elasticsearch import ApiError, AsyncElasticsearch, NotFoundError
from elasticsearch.helpers import async_bulk

from alertstream.core.config import ElasticsearchConfig
from alertstream.core.enums import AlertSeverity, AlertStatus
from alertstream.core.errors import ProjectionWriteFailure
from alertstream.projection.document import (
    ALERT_INDEX_SETTINGS,
    ALERT_MAPPING,
    DocumentUpdate,
)
from alertstream.projection.read_store import AlertSearch, SearchResult

logger = logging.getLogger(__name__)


def create_client(config: ElasticsearchConfig) -> AsyncElasticsearch:
    """Build an async client from *config*."""
    kwargs: dict[str, Any] = {}
    if config.username and config.password:
        kwargs["basic_auth"] = (config.username, config.password)
    # TLS options are only accepted for https nodes.
    if config.url.startswith("https"):
        kwargs["verify_certs"] = config.verify_certs
    return AsyncElasticsearch(
        [config.url],
        request_timeout=config.request_timeout,
        **kwargs,
    )


def build_query(query: AlertSearch) -> dict[str, Any]:
    """Translate an ``AlertSearch`` into an Elasticsearch bool query."""
    filters: list[dict[str, Any]] = []
    must: list[dict[str, Any]] = []

    if query.status is not None:
        filters.append({"term": {"status": AlertStatus(query.status).value}})
    if query.severity is not None:
        filters.append({"term": {"severity": AlertSeverity(query.severity).value}})
    if query.assignee is not None:
        filters.append({"term": {"assignee": query.assignee}})
    if query.created_from is not None or query.created_to is not None:
        rng: dict[str, str] = {}
        if query.created_from is not None:
            rng["gte"] = query.created_from.isoformat()
        if query.created_to is not None:
            rng["lte"] = query.created_to.isoformat()
        filters.append({"range": {"createdAt": rng}})
    if query.keyword:
        must.append({
            "multi_match": {
                "query": query.keyword,
                "fields": ["description", "source"],
                "type": "best_fields",
            }
        })

    if not filters and not must:
        return {"match_all": {}}
    return {"bool": {"filter": filters, "must": must}}


class ElasticsearchReadStore:
    """Alert documents in one Elasticsearch index.

    Parameters
    ----------
    client:
        Async Elasticsearch client.  Closed by :meth:`close`.
    index:
        Index name (default ``"alerts"``).
    retry_on_conflict:
        Per-update conflict retries handled server-side.
    refresh:
        Refresh policy passed on writes.  ``False`` in production;
        tests against a live cluster may want ``"wait_for"``.
    """

    def __init__(
        self,
        client: AsyncElasticsearch,
        *,
        index: str = "alerts",
        retry_on_conflict: int = 3,
        refresh: bool | str = False,
    ) -> None:
        self._es = client
        self._index = index
        self._retry_on_conflict = retry_on_conflict
        self._refresh = refresh

    @classmethod
    def from_config(cls, config: ElasticsearchConfig) -> ElasticsearchReadStore:
        return cls(
            create_client(config),
            index=config.index,
            retry_on_conflict=config.retry_on_conflict,
        )

    @property
    def index(self) -> str:
        return self._index

    async def get(self, alert_id: str) -> dict[str, Any] | None:
        try:
            resp = await self._es.get(index=self._index, id=alert_id)
        except NotFoundError:
            return None
        return dict(resp["_source"])

    async def upsert(self, alert_id: str, document: dict[str, Any]) -> None:
        try:
            await self._es.index(
                index=self._index, id=alert_id, document=document,
                refresh=self._refresh,
            )
        except (ApiError, TransportError) as exc:
            raise ProjectionWriteFailure(
                f"Index of document {alert_id} failed: {exc}"
            ) from exc

    async def update(self, update: DocumentUpdate) -> None:
        try:
            await self._es.update(
                index=self._index,
                id=update.alert_id,
                doc=update.fields,
                doc_as_upsert=False,
                retry_on_conflict=self._retry_on_conflict,
                refresh=self._refresh,
            )
        except (ApiError, TransportError) as exc:
            raise ProjectionWriteFailure(
                f"Update of document {update.alert_id} failed: {exc}"
            ) from exc

    async def bulk_update(self, updates: Sequence[DocumentUpdate]) -> None:
        if not updates:
            return
        actions = [
            {
                "_op_type": "update",
                "_index": self._index,
                "_id": upd.alert_id,
                "doc": upd.fields,
                "doc_as_upsert": False,
                "retry_on_conflict": self._retry_on_conflict,
            }
            for upd in updates
        ]
        try:
            _, errors = await async_bulk(
                self._es, actions, raise_on_error=False, refresh=self._refresh,
            )
        except (ApiError, TransportError) as exc:
            raise ProjectionWriteFailure(
                f"Bulk update of {len(updates)} documents failed: {exc}",
                count=len(updates),
            ) from exc
        if errors:
            raise ProjectionWriteFailure(
                f"{len(errors)} of {len(updates)} bulk updates failed: {errors[:3]}",
                count=len(errors),
            )

    async def recreate_index(self) -> None:
        if await self._es.indices.exists(index=self._index):
            logger.warning("Deleting existing Elasticsearch index: %s", self._index)
            await self._es.indices.delete(index=self._index)
        logger.info("Creating Elasticsearch index: %s", self._index)
        await self._es.indices.create(
            index=self._index,
            mappings=ALERT_MAPPING,
            settings=ALERT_INDEX_SETTINGS,
        )

    async def search(self, query: AlertSearch) -> SearchResult:
        resp = await self._es.search(
            index=self._index,
            query=build_query(query),
            sort=[{"createdAt": {"order": "desc"}}],
            from_=query.page * query.size,
            size=query.size,
            track_total_hits=True,
        )
        hits = resp["hits"]
        return SearchResult(
            documents=[dict(h["_source"]) for h in hits["hits"]],
            total=hits["total"]["value"],
        )

    async def close(self) -> None:
        await self._es.close()
