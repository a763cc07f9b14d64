"""Curriculum stage tags on documents and their stored chunks."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import BaseModel

from kb_ingest.documents.models import DocumentStatus
from kb_ingest.documents.repository import DocumentRepository
from kb_ingest.errors import DocumentNotFoundError
from kb_ingest.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)

VALID_STAGE_IDS: tuple[str, ...] = tuple(f"Q{n}" for n in range(1, 11))


class StageUpdateResult(BaseModel):
    document_id: str
    stage_ids: list[str]
    updated_chunks: int


def normalize_stage_ids(stage_ids: Iterable[object]) -> list[str]:
    """Upper-case, drop anything outside ``Q1``–``Q10``, de-duplicate in order."""
    cleaned: list[str] = []
    for value in stage_ids:
        if not isinstance(value, str):
            continue
        tag = value.strip().upper()
        if tag in VALID_STAGE_IDS and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


async def update_stage_ids(
    documents: DocumentRepository,
    vector_store: VectorStoreBase,
    document_id: str,
    stage_ids: Iterable[object],
) -> StageUpdateResult:
    """Retag a document without reprocessing it.

    The record is always updated; chunk metadata is rewritten in place only
    when the document is ``processed`` and has chunks.

    Raises
    ------
    DocumentNotFoundError
        When *document_id* has no record.
    """
    document = await documents.get(document_id)
    if document is None:
        raise DocumentNotFoundError(document_id)

    cleaned = normalize_stage_ids(stage_ids)
    await documents.update(document_id, stage_ids=cleaned)

    updated_chunks = 0
    if document.status == DocumentStatus.PROCESSED and document.chunk_count > 0:
        await vector_store.init()
        updated_chunks = await vector_store.update_stage_ids(document_id, cleaned)

    logger.info(
        "Updated stage_ids for document %s to %s (%d chunks)", document_id, cleaned, updated_chunks
    )
    return StageUpdateResult(document_id=document_id, stage_ids=cleaned, updated_chunks=updated_chunks)
