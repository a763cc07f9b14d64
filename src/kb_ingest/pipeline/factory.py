"""Wire the pipeline collaborators from :class:`~kb_ingest.config.Settings`."""

from __future__ import annotations

import logging
from typing import NamedTuple

from kb_ingest.config import Settings
from kb_ingest.documents.repository import SQLDocumentRepository
from kb_ingest.ingestion.embedder import EmbeddingBatcher, get_embedding_provider
from kb_ingest.ingestion.loader import TextExtractorRegistry
from kb_ingest.ingestion.storage import get_storage
from kb_ingest.pipeline.gate import ConcurrencyGate
from kb_ingest.pipeline.lifecycle import DocumentLifecycleManager
from kb_ingest.retrieval.retriever import SemanticRetriever

logger = logging.getLogger(__name__)


class Pipeline(NamedTuple):
    manager: DocumentLifecycleManager
    retriever: SemanticRetriever


async def build_pipeline(settings: Settings) -> Pipeline:
    """Create the record store schema and return a ready manager + retriever."""
    from kb_ingest.retrieval.chroma_store import ChromaVectorStore

    documents = SQLDocumentRepository(settings.database_url)
    await documents.create_schema()

    provider = get_embedding_provider(settings)
    vector_store = ChromaVectorStore(
        settings.chroma_collection,
        host=settings.chroma_host,
        port=settings.chroma_port,
    )
    manager = DocumentLifecycleManager(
        documents=documents,
        storage=get_storage(settings),
        extractors=TextExtractorRegistry(),
        embedder=EmbeddingBatcher.from_settings(provider, settings),
        vector_store=vector_store,
        gate=ConcurrencyGate(settings.max_concurrent),
        defaults=settings.processing_defaults(),
    )
    logger.info(
        "Pipeline ready (storage=%s, embeddings=%s:%s, collection=%s)",
        settings.storage_mode,
        settings.embedding_provider,
        settings.embedding_model,
        settings.chroma_collection,
    )
    return Pipeline(manager=manager, retriever=SemanticRetriever(vector_store, provider))
