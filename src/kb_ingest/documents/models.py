"""Domain models for knowledge-base documents and processing outcomes."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class Document(BaseModel):
    """An uploaded source file and its processing state.

    Attributes
    ----------
    id:
        Document identifier; chunks reference it as ``document_id``.
    storage_key:
        Absolute local path, path relative to the upload directory, or
        object key in the remote store.
    filename / original_name:
        Stored filename and the name the uploader used.
    mime_type:
        Content type recorded at upload; selects the text extractor.
    status:
        ``pending → processing → processed | error``.
    chunk_count:
        Number of chunks stored by the last successful attempt.
    processing_attempts:
        Incremented at the start of every attempt, never reset.
    error_message:
        Failure message of the last attempt, ``None`` after success.
    last_processed_at:
        UTC time the last attempt finished.
    chunk_size / chunk_overlap:
        Optional per-document overrides of the chunking parameters.
    stage_ids:
        Curriculum stage tags (``Q1`` … ``Q10``) copied into chunk metadata.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    storage_key: str
    filename: str = ""
    original_name: str
    mime_type: str
    size: int = 0
    status: DocumentStatus = DocumentStatus.PENDING
    chunk_count: int = 0
    processing_attempts: int = 0
    error_message: str | None = None
    last_processed_at: datetime | None = None
    chunk_size: int | None = None
    chunk_overlap: int | None = None
    stage_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ProcessingConfig(BaseModel):
    """Chunking and embedding parameters for one processing attempt.

    Only fields the caller sets explicitly take part in :meth:`resolve`, so
    ``ProcessingConfig(chunk_size=800)`` overrides the chunk size and leaves
    every other default in place.
    """

    chunk_size: int = Field(default=500, gt=0)
    chunk_overlap: int = Field(default=100, ge=0)
    max_retries: int = Field(default=3, ge=1)
    batch_size: int = Field(default=20, ge=1)

    @classmethod
    def resolve(
        cls,
        defaults: ProcessingConfig,
        overrides: ProcessingConfig | None = None,
        document: Document | None = None,
    ) -> ProcessingConfig:
        """Merge with precedence ``document > overrides > defaults``."""
        merged: dict[str, Any] = defaults.model_dump()
        if overrides is not None:
            merged.update(overrides.model_dump(exclude_unset=True))
        if document is not None:
            if document.chunk_size is not None:
                merged["chunk_size"] = document.chunk_size
            if document.chunk_overlap is not None:
                merged["chunk_overlap"] = document.chunk_overlap
        resolved = cls(**merged)
        if resolved.chunk_overlap >= resolved.chunk_size:
            raise ValueError(
                f"chunk_overlap ({resolved.chunk_overlap}) must be < chunk_size ({resolved.chunk_size})"
            )
        return resolved


class ProcessingResult(BaseModel):
    """Outcome of one :meth:`DocumentLifecycleManager.process_document` call."""

    document_id: str
    success: bool
    chunk_count: int | None = None
    error: str | None = None
    error_code: str | None = None
    attempts: int = 0


class BatchSummary(BaseModel):
    processed: int = 0
    failed: int = 0
    details: list[ProcessingResult] = Field(default_factory=list)


class RetrySummary(BaseModel):
    retried: int = 0
    succeeded: int = 0
    still_failed: int = 0
    details: list[ProcessingResult] = Field(default_factory=list)
