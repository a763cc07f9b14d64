"""
Retrieval — vector storage of document chunks and stage-aware search.

This module wraps the vector store behind a clean interface so that the
pipeline never needs to know which DB is backing the knowledge base.

Public surface
--------------
- :class:`SemanticRetriever` — query-side entry point returning citations.
- :class:`VectorStoreBase` — abstract backend (subclass for pgvector, etc.).
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`ChunkRecord`, :class:`ChunkMetadata` — what the pipeline stores.
- :class:`Citation`, :class:`RetrievalResult`, :class:`MetadataFilter` — data models.
"""

from kb_ingest.retrieval.base import VectorStoreBase
from kb_ingest.retrieval.models import (
    ChunkMetadata,
    ChunkRecord,
    Citation,
    MetadataFilter,
    RetrievalResult,
)
from kb_ingest.retrieval.retriever import SemanticRetriever

__all__ = [
    "ChromaVectorStore",
    "ChunkMetadata",
    "ChunkRecord",
    "Citation",
    "MetadataFilter",
    "RetrievalResult",
    "SemanticRetriever",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from kb_ingest.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
