"""Per-document processing: fetch → extract → chunk → embed → index.

:class:`DocumentLifecycleManager` drives one document through
``pending | error → processing → processed | error`` and is the boundary
where pipeline exceptions become persisted state plus a
:class:`~kb_ingest.documents.models.ProcessingResult`.  It never raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from kb_ingest.documents.models import Document, DocumentStatus, ProcessingConfig, ProcessingResult
from kb_ingest.documents.repository import DocumentRepository
from kb_ingest.errors import (
    ChunkStorageError,
    DocumentBusyError,
    DocumentNotFoundError,
    EmbeddingError,
    EmptyContentError,
    NoChunksError,
)
from kb_ingest.ingestion.chunker import split_into_chunks
from kb_ingest.ingestion.embedder import EmbeddingBatcher
from kb_ingest.ingestion.loader import TextExtractorRegistry
from kb_ingest.ingestion.storage import StorageBackend
from kb_ingest.pipeline.gate import ConcurrencyGate
from kb_ingest.pipeline.stages import normalize_stage_ids
from kb_ingest.retrieval.base import VectorStoreBase
from kb_ingest.retrieval.models import ChunkMetadata, ChunkRecord

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _failure_message(exc: BaseException) -> str:
    if isinstance(exc, EmbeddingError):
        return f"Embedding failed: {exc}"
    return str(exc) or type(exc).__name__


class DocumentLifecycleManager:
    """Processes documents end to end under a shared concurrency gate.

    Parameters
    ----------
    documents:
        Record store holding :class:`Document` state.
    storage:
        Source-file backend (local directory or S3 bucket).
    extractors:
        Mime type → text extractor registry.
    embedder:
        Batched, retrying embedding generator.
    vector_store:
        Where chunks and their embeddings are written.
    gate:
        Limits how many documents are in flight; a fresh gate with the
        default limit is created when omitted.
    defaults:
        Baseline :class:`ProcessingConfig`; per-call and per-document
        overrides are layered on top.
    """

    def __init__(
        self,
        documents: DocumentRepository,
        storage: StorageBackend,
        extractors: TextExtractorRegistry,
        embedder: EmbeddingBatcher,
        vector_store: VectorStoreBase,
        gate: ConcurrencyGate | None = None,
        defaults: ProcessingConfig | None = None,
    ) -> None:
        self.documents = documents
        self.storage = storage
        self.extractors = extractors
        self.embedder = embedder
        self.vector_store = vector_store
        self.gate = gate or ConcurrencyGate()
        self.defaults = defaults or ProcessingConfig()

    # -- public API -----------------------------------------------------------

    async def process_document(
        self,
        document_id: str,
        config: ProcessingConfig | None = None,
    ) -> ProcessingResult:
        """Run one processing attempt for *document_id*.

        Missing documents and documents that cannot get a gate slot are
        reported without touching their record.  Every other failure is
        stored on the document (``status=error``) and returned.
        """
        document = await self.documents.get(document_id)
        if document is None:
            error = DocumentNotFoundError(document_id)
            logger.warning("%s", error)
            return ProcessingResult(
                document_id=document_id, success=False, error=str(error), error_code=error.code
            )

        if not self.gate.try_acquire(document_id):
            error = DocumentBusyError(document_id)
            return ProcessingResult(
                document_id=document_id,
                success=False,
                error=str(error),
                error_code=error.code,
                attempts=document.processing_attempts,
            )

        attempts = document.processing_attempts + 1
        try:
            # The record may have changed while the slot was being taken.
            document = await self.documents.get(document_id) or document
            attempts = document.processing_attempts + 1
            logger.info("Processing document %s (%s), attempt %d", document_id, document.original_name, attempts)
            await self.documents.update(
                document_id,
                status=DocumentStatus.PROCESSING,
                processing_attempts=attempts,
                error_message=None,
            )
            chunk_count = await self._run(document, config)
            await self.documents.update(
                document_id,
                status=DocumentStatus.PROCESSED,
                chunk_count=chunk_count,
                last_processed_at=_now(),
                error_message=None,
            )
        except Exception as exc:
            message = _failure_message(exc)
            logger.exception("Processing failed for document %s: %s", document_id, message)
            await self._record_failure(document_id, message)
            return ProcessingResult(
                document_id=document_id,
                success=False,
                error=message,
                error_code=getattr(exc, "code", "error"),
                attempts=attempts,
            )
        finally:
            self.gate.release(document_id)

        logger.info("Document %s processed: %d chunks", document_id, chunk_count)
        return ProcessingResult(
            document_id=document_id, success=True, chunk_count=chunk_count, attempts=attempts
        )

    async def process_documents(
        self,
        document_ids: Iterable[str],
        config: ProcessingConfig | None = None,
    ) -> list[ProcessingResult]:
        """Process several documents concurrently, bounded by the gate.

        Ids that find no free slot come back as ``busy`` results.
        """
        return list(
            await asyncio.gather(*(self.process_document(doc_id, config) for doc_id in document_ids))
        )

    # -- internals ------------------------------------------------------------

    async def _run(self, document: Document, config: ProcessingConfig | None) -> int:
        cfg = ProcessingConfig.resolve(self.defaults, config, document)
        logger.debug(
            "Document %s config: chunk_size=%d overlap=%d batch_size=%d max_retries=%d",
            document.id,
            cfg.chunk_size,
            cfg.chunk_overlap,
            cfg.batch_size,
            cfg.max_retries,
        )

        async with self.storage.local_copy(document.storage_key) as path:
            data = await asyncio.to_thread(path.read_bytes)

        text = await self.extractors.extract(data, document.mime_type)
        if not text.strip():
            raise EmptyContentError()

        chunks = split_into_chunks(text, cfg.chunk_size, cfg.chunk_overlap)
        if not chunks:
            raise NoChunksError()
        logger.info("Document %s split into %d chunks", document.id, len(chunks))

        embeddings = await self.embedder.embed_with_retry(
            chunks, batch_size=cfg.batch_size, max_retries=cfg.max_retries
        )

        # Stage tags can be edited while a document is processing; use the latest.
        latest = await self.documents.get(document.id) or document
        stage_ids = normalize_stage_ids(latest.stage_ids) or None
        records = [
            ChunkRecord(
                content=content,
                embedding=embedding,
                metadata=ChunkMetadata(
                    original_name=document.original_name,
                    chunk_index=index,
                    total_chunks=len(chunks),
                    stage_ids=stage_ids,
                ),
            )
            for index, (content, embedding) in enumerate(zip(chunks, embeddings))
        ]

        await self.vector_store.init()
        removed = await self.vector_store.delete_by_document_id(document.id)
        if removed:
            logger.info("Removed %d previous chunks of document %s", removed, document.id)
        await self.vector_store.insert_chunks(document.id, records)

        stored = await self.vector_store.count_by_document_id(document.id)
        if stored != len(chunks):
            logger.warning(
                "Chunk count mismatch for document %s: expected %d, stored %d",
                document.id,
                len(chunks),
                stored,
            )
        if stored == 0:
            raise ChunkStorageError(f"Vector store holds no chunks for document {document.id}")
        return stored

    async def _record_failure(self, document_id: str, message: str) -> None:
        try:
            await self.documents.update(
                document_id,
                status=DocumentStatus.ERROR,
                error_message=message,
                last_processed_at=_now(),
            )
        except Exception:
            logger.exception("Could not record failure for document %s", document_id)
