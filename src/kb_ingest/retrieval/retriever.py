"""Semantic retriever — stage-aware search with citation tracking.

This module is the read side of the knowledge base: it embeds a query
through the same :class:`~kb_ingest.ingestion.embedder.EmbeddingProvider`
used at ingestion time and asks the vector store for the closest chunks.

Usage::

    retriever = SemanticRetriever(store, provider)
    results   = await retriever.search("How are learning outcomes assessed?", stage_id="Q3")
    for r in results:
        print(r.citation.short_ref(), r.content[:80])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from kb_ingest.retrieval.models import Citation, MetadataFilter, RetrievalResult

if TYPE_CHECKING:
    from kb_ingest.ingestion.embedder import EmbeddingProvider
    from kb_ingest.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


class SemanticRetriever:
    """High-level retriever that wraps any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    provider:
        Embedding provider used to vectorise queries.
    default_k:
        Default number of results returned by :meth:`search`.
    score_threshold:
        Minimum similarity score; results below this are discarded.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        provider: EmbeddingProvider,
        *,
        default_k: int = 5,
        score_threshold: float = 0.0,
    ) -> None:
        self._store = store
        self._provider = provider
        self.default_k = default_k
        self.score_threshold = score_threshold

    # -- public API -----------------------------------------------------------

    async def search(
        self,
        query: str,
        *,
        k: int | None = None,
        stage_id: str | None = None,
        document_ids: list[str] | None = None,
        filters: list[MetadataFilter] | None = None,
    ) -> list[RetrievalResult]:
        """Run a semantic search and return results with citations.

        Parameters
        ----------
        query:
            Natural-language query string.
        k:
            Number of results (defaults to ``self.default_k``).
        stage_id:
            Restrict to chunks that are untagged or tagged with this stage.
        document_ids:
            Restrict to chunks owned by these documents.
        filters:
            Extra metadata filters forwarded to the vector store.

        Returns
        -------
        list[RetrievalResult]
            Ranked results, each carrying a :class:`Citation`.
        """
        if not query.strip():
            return []
        [embedding] = await self._provider.embed([query])
        return await self.search_by_embedding(
            embedding, k=k, stage_id=stage_id, document_ids=document_ids, filters=filters
        )

    async def search_by_embedding(
        self,
        embedding: list[float],
        *,
        k: int | None = None,
        stage_id: str | None = None,
        document_ids: list[str] | None = None,
        filters: list[MetadataFilter] | None = None,
    ) -> list[RetrievalResult]:
        """Same as :meth:`search` but accepts a pre-computed embedding."""
        k = k or self.default_k
        all_filters = list(filters or [])
        if document_ids:
            all_filters.append(MetadataFilter.one_of("document_id", document_ids))
        if stage_id:
            stage_id = stage_id.strip().upper()

        await self._store.init()
        raw_hits = await self._store.similarity_search(
            embedding, k=k, filters=all_filters or None, stage_id=stage_id or None
        )
        results = self._to_results(raw_hits)
        logger.debug("Search returned %d / %d hits (stage=%s)", len(results), len(raw_hits), stage_id)
        return results

    # -- internals ------------------------------------------------------------

    def _to_results(self, raw_hits: list[dict[str, Any]]) -> list[RetrievalResult]:
        results: list[RetrievalResult] = []
        for hit in raw_hits:
            score = hit.get("score")
            if score is not None and score < self.score_threshold:
                continue

            meta = hit.get("metadata", {})
            citation = Citation(
                chunk_id=hit.get("id"),
                document_id=meta.get("document_id"),
                source=meta.get("original_name") or "unknown",
                chunk_index=meta.get("chunk_index"),
                total_chunks=meta.get("total_chunks"),
                score=score,
                stage_ids=meta.get("stage_ids") or [],
            )
            results.append(RetrievalResult(content=hit.get("content", ""), citation=citation))
        return results
