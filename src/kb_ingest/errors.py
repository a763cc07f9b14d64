"""Exception taxonomy for the ingestion pipeline.

Every failure that can end a processing attempt maps to one of the classes
below.  Each class carries a short ``code`` that is surfaced on
:class:`~kb_ingest.documents.models.ProcessingResult` so callers (HTTP
layer, batch drivers) can react without inspecting message strings.
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for pipeline failures."""

    code = "error"


class DocumentNotFoundError(IngestionError):
    """No document record exists for the requested id."""

    code = "not_found"

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class DocumentBusyError(IngestionError):
    """The document is already in flight, or every processing slot is taken."""

    code = "busy"

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id} is busy: already processing or no free slot")
        self.document_id = document_id


class UnsupportedMimeTypeError(IngestionError):
    code = "unsupported_mime_type"

    def __init__(self, mime_type: str) -> None:
        super().__init__(f"Unsupported file type: {mime_type}")
        self.mime_type = mime_type


class EmptyContentError(IngestionError):
    code = "empty_content"

    def __init__(self, message: str = "No text content extracted from document") -> None:
        super().__init__(message)


class NoChunksError(IngestionError):
    code = "no_chunks"

    def __init__(self, message: str = "Text splitting produced no chunks") -> None:
        super().__init__(message)


class EmbeddingError(IngestionError):
    """An embedding batch failed after exhausting its retry budget.

    Attributes
    ----------
    batch_index:
        Zero-based index of the batch that failed.
    cause:
        The last underlying exception raised by the provider.
    """

    code = "embedding"

    def __init__(self, batch_index: int, cause: BaseException, attempts: int | None = None) -> None:
        detail = f" after {attempts} attempt(s)" if attempts is not None else ""
        super().__init__(f"batch {batch_index} failed{detail}: {cause}")
        self.batch_index = batch_index
        self.cause = cause
        self.attempts = attempts


class ChunkStorageError(IngestionError):
    """The vector store did not persist the chunks it was given."""

    code = "storage"


class StorageError(IngestionError):
    """Source file could not be read from local disk or the object store."""

    code = "storage"


# -- provider-boundary classification ----------------------------------------


class ProviderError(Exception):
    """Error raised by an embedding provider.

    ``transient`` errors (network, timeout, rate limit) get the long backoff
    base; ``retryable = False`` errors (auth, validation) are not retried.
    """

    transient = False
    retryable = True


class TransientProviderError(ProviderError):
    transient = True


class PermanentProviderError(ProviderError):
    retryable = False
