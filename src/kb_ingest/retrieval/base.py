"""Abstract base class for vector-store backends.

Adding a new backend (pgvector, Qdrant, …) only requires subclassing
:class:`VectorStoreBase` and implementing the abstract coroutines.  The
document pipeline only relies on ``init``, ``insert_chunks``,
``delete_by_document_id`` and ``count_by_document_id``; the remaining
methods serve search and knowledge-base maintenance.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from kb_ingest.retrieval.models import ChunkRecord, MetadataFilter


class VectorStoreBase(ABC):
    """Backend-agnostic chunk store, keyed by owning document id.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / table.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    async def init(self) -> None:
        """Create the collection / schema if needed.  Must be idempotent."""
        ...

    @abstractmethod
    async def insert_chunks(self, document_id: str, chunks: Sequence[ChunkRecord]) -> int:
        """Store *chunks* for *document_id*; returns how many were written."""
        ...

    @abstractmethod
    async def delete_by_document_id(self, document_id: str) -> int:
        """Remove every chunk of *document_id*; returns how many were removed."""
        ...

    @abstractmethod
    async def count_by_document_id(self, document_id: str) -> int:
        ...

    @abstractmethod
    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        stage_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return the top-*k* chunks closest to *query_embedding*.

        Each result dict **must** contain at least:

        * ``"id"`` – chunk identifier
        * ``"content"`` – the chunk text
        * ``"score"`` – similarity score (higher = more similar)
        * ``"metadata"`` – chunk metadata including ``document_id``

        With *stage_id*, only chunks without stage tags or tagged with
        that stage are returned.
        """
        ...

    # -- optional overrides ---------------------------------------------------

    async def list_document_ids(self) -> list[str]:
        """Ids of every document that owns at least one chunk."""
        raise NotImplementedError(f"{type(self).__name__} does not support listing documents")

    async def update_stage_ids(self, document_id: str, stage_ids: list[str]) -> int:
        """Rewrite the stage tags of a document's chunks; returns chunks updated."""
        raise NotImplementedError(f"{type(self).__name__} does not support stage updates")

    async def stats(self) -> dict[str, Any]:
        return {"collection": self.collection_name}

    async def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        return True
