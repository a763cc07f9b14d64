"""Domain models for stored chunks, search filters, and citations."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class ChunkMetadata(BaseModel):
    """Metadata stored alongside every chunk.

    ``stage_ids`` is left as ``None`` for untagged documents, which makes the
    chunk visible to every curriculum stage.
    """

    original_name: str
    chunk_index: int
    total_chunks: int
    stage_ids: list[str] | None = None


class ChunkRecord(BaseModel):
    """One chunk of a document together with its embedding."""

    content: str
    embedding: list[float]
    metadata: ChunkMetadata


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"document_id"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    # -- helpers for common filters ------------------------------------------

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def not_equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="ne", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


class Citation(BaseModel):
    """Provenance record linking a retrieved chunk back to its source document.

    Attributes
    ----------
    citation_id:
        Unique identifier for this citation instance.
    chunk_id:
        The vector-store id of the chunk (``None`` when unknown).
    document_id:
        Id of the owning document record.
    source:
        Original filename of the document.
    chunk_index / total_chunks:
        Position of the chunk within its document.
    score:
        Similarity score returned by the vector store (higher = closer).
    stage_ids:
        Curriculum stages the chunk is tagged with (empty = all stages).
    retrieved_at:
        UTC timestamp of when the retrieval happened.
    """

    citation_id: str = Field(default_factory=lambda: uuid4().hex[:12])
    chunk_id: str | None = None
    document_id: str | None = None
    source: str = "unknown"
    chunk_index: int | None = None
    total_chunks: int | None = None
    score: float | None = None
    stage_ids: list[str] = Field(default_factory=list)
    retrieved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def short_ref(self) -> str:
        """Return a compact ``[source§chunk]`` reference string."""
        chunk = self.chunk_index if self.chunk_index is not None else "?"
        return f"[{self.source}§{chunk}]"


class RetrievalResult(BaseModel):
    """A single retrieved passage together with its citation."""

    content: str
    citation: Citation

    def __str__(self) -> str:  # noqa: D105
        return f"{self.citation.short_ref()} {self.content[:120]}…"
