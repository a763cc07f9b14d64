"""
Documents — knowledge-base document records and processing outcomes.

Public surface
--------------
- :class:`Document`, :class:`DocumentStatus` — the record and its lifecycle states.
- :class:`ProcessingConfig` — chunking / embedding parameters with override resolution.
- :class:`ProcessingResult`, :class:`BatchSummary`, :class:`RetrySummary` — outcomes.
- :class:`DocumentRepository` — abstract record store.
- :class:`SQLDocumentRepository` — SQLAlchemy backend.
"""

from kb_ingest.documents.models import (
    BatchSummary,
    Document,
    DocumentStatus,
    ProcessingConfig,
    ProcessingResult,
    RetrySummary,
)
from kb_ingest.documents.repository import DocumentRepository, SQLDocumentRepository

__all__ = [
    "BatchSummary",
    "Document",
    "DocumentRepository",
    "DocumentStatus",
    "ProcessingConfig",
    "ProcessingResult",
    "RetrySummary",
    "SQLDocumentRepository",
]
