"""Read-model projection -- batched alert documents.

Public API
----------
::

    from alertstream.projection import (
        AlertProjector,
        AlertSearch,
        DocumentUpdate,
        InMemoryReadStore,
        IReadStore,
        SearchResult,
    )

The Elasticsearch backend is imported from
``alertstream.projection.elasticsearch_store``.
"""

from __future__ import annotations

from alertstream.projection.document import DocumentUpdate
from alertstream.projection.projector import AlertProjector
from alertstream.projection.read_store import (
    AlertSearch,
    InMemoryReadStore,
    IReadStore,
    SearchResult,
)

__all__ = [
    "AlertProjector",
    "AlertSearch",
    "DocumentUpdate",
    "InMemoryReadStore",
    "IReadStore",
    "SearchResult",
]
