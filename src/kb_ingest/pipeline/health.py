"""Knowledge-base consistency checks between the record store and the vector store.

Processing only logs chunk-count mismatches; this module is where they are
surfaced, together with orphan chunk sets (chunks whose document record no
longer exists), and where the two repair actions live.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Literal

from pydantic import BaseModel, Field

from kb_ingest.documents.models import DocumentStatus
from kb_ingest.documents.repository import DocumentRepository
from kb_ingest.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


class DocumentHealth(BaseModel):
    """Stored-vs-recorded chunk counts for one processed document."""

    document_id: str
    original_name: str
    expected_chunks: int
    actual_chunks: int
    healthy: bool
    mismatch: bool


class HealthReport(BaseModel):
    overall: Literal["healthy", "issues_found"]
    total_documents: int
    healthy_documents: int
    mismatched_documents: int
    orphan_chunk_sets: int
    documents_by_status: dict[str, int] = Field(default_factory=dict)
    vector_store: dict[str, Any] = Field(default_factory=dict)
    mismatches: list[DocumentHealth] = Field(default_factory=list)
    orphans: list[str] = Field(default_factory=list)


async def find_orphan_document_ids(
    documents: DocumentRepository,
    vector_store: VectorStoreBase,
) -> list[str]:
    """Document ids that own chunks but have no record."""
    known = {doc.id for doc in await documents.list_all()}
    return [doc_id for doc_id in await vector_store.list_document_ids() if doc_id not in known]


async def check_health(documents: DocumentRepository, vector_store: VectorStoreBase) -> HealthReport:
    """Compare every ``processed`` document with what the vector store holds."""
    await vector_store.init()

    processed = await documents.list_by_status(DocumentStatus.PROCESSED)
    results: list[DocumentHealth] = []
    for doc in processed:
        actual = await vector_store.count_by_document_id(doc.id)
        results.append(
            DocumentHealth(
                document_id=doc.id,
                original_name=doc.original_name,
                expected_chunks=doc.chunk_count,
                actual_chunks=actual,
                healthy=actual > 0 and actual == doc.chunk_count,
                mismatch=actual != doc.chunk_count,
            )
        )

    mismatches = [r for r in results if r.mismatch]
    orphans = await find_orphan_document_ids(documents, vector_store)
    report = HealthReport(
        overall="healthy" if not mismatches and not orphans else "issues_found",
        total_documents=len(processed),
        healthy_documents=sum(1 for r in results if r.healthy),
        mismatched_documents=len(mismatches),
        orphan_chunk_sets=len(orphans),
        documents_by_status=await documents.count_by_status(),
        vector_store=await vector_store.stats(),
        mismatches=mismatches,
        orphans=orphans,
    )
    if report.overall != "healthy":
        logger.warning(
            "Knowledge base has issues: %d mismatched documents, %d orphan chunk sets",
            report.mismatched_documents,
            report.orphan_chunk_sets,
        )
    return report


async def cleanup_orphans(
    documents: DocumentRepository,
    vector_store: VectorStoreBase,
) -> tuple[int, list[str]]:
    """Delete orphan chunk sets; returns ``(chunks_removed, orphan_ids)``."""
    await vector_store.init()
    orphans = await find_orphan_document_ids(documents, vector_store)
    removed = 0
    for doc_id in orphans:
        removed += await vector_store.delete_by_document_id(doc_id)
    logger.info("Cleaned up %d orphan chunks from %d document sets", removed, len(orphans))
    return removed, orphans


async def mark_for_reprocessing(documents: DocumentRepository, document_ids: Iterable[str]) -> int:
    """Put documents back to ``pending`` so the next batch run picks them up."""
    marked = await documents.mark_pending(document_ids)
    logger.info("Marked %d documents for reprocessing", marked)
    return marked
