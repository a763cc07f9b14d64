"""In-memory collaborators shared by the unit tests."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from kb_ingest.documents.models import Document, DocumentStatus, ProcessingConfig
from kb_ingest.documents.repository import DocumentRepository
from kb_ingest.ingestion.embedder import EmbeddingBatcher, EmbeddingProvider
from kb_ingest.ingestion.loader import TextExtractorRegistry
from kb_ingest.ingestion.storage import LocalStorage
from kb_ingest.pipeline.gate import ConcurrencyGate
from kb_ingest.pipeline.lifecycle import DocumentLifecycleManager
from kb_ingest.retrieval.base import VectorStoreBase
from kb_ingest.retrieval.models import ChunkRecord, MetadataFilter


# ── Fakes ───────────────────────────────────────────────────────────────


class FakeDocumentRepository(DocumentRepository):
    """Dict-backed record store."""

    def __init__(self) -> None:
        self.docs: dict[str, Document] = {}

    def put(self, document: Document) -> Document:
        self.docs[document.id] = document
        return document

    async def get(self, document_id: str) -> Document | None:
        return self.docs.get(document_id)

    async def add(self, document: Document) -> Document:
        return self.put(document)

    async def update(self, document_id: str, **fields: Any) -> Document | None:
        doc = self.docs.get(document_id)
        if doc is None:
            return None
        for name in fields:
            if name not in Document.model_fields:
                raise AttributeError(f"Unknown document field: {name!r}")
        updated = doc.model_copy(update=fields)
        self.docs[document_id] = updated
        return updated

    async def list_by_status(self, status: DocumentStatus) -> list[Document]:
        return [d for d in self.docs.values() if d.status == status]

    async def list_all(self) -> list[Document]:
        return list(self.docs.values())


class FakeVectorStore(VectorStoreBase):
    """Keeps chunks per document id and answers searches in insertion order."""

    def __init__(self) -> None:
        super().__init__("test-collection")
        self.chunks: dict[str, list[ChunkRecord]] = {}
        self.init_calls = 0
        self.insert_calls = 0
        self.drop_on_insert = False
        self.last_filters: list[MetadataFilter] | None = None
        self.last_stage_id: str | None = None

    async def init(self) -> None:
        self.init_calls += 1

    async def insert_chunks(self, document_id: str, chunks: Sequence[ChunkRecord]) -> int:
        self.insert_calls += 1
        if self.drop_on_insert:
            return 0
        self.chunks.setdefault(document_id, []).extend(chunks)
        return len(chunks)

    async def delete_by_document_id(self, document_id: str) -> int:
        return len(self.chunks.pop(document_id, []))

    async def count_by_document_id(self, document_id: str) -> int:
        return len(self.chunks.get(document_id, []))

    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        stage_id: str | None = None,
    ) -> list[dict[str, Any]]:
        self.last_filters = filters
        self.last_stage_id = stage_id
        hits: list[dict[str, Any]] = []
        for document_id, records in self.chunks.items():
            for record in records:
                tags = record.metadata.stage_ids or []
                if stage_id and tags and stage_id not in tags:
                    continue
                hits.append(
                    {
                        "id": f"{document_id}:{record.metadata.chunk_index}",
                        "content": record.content,
                        "score": 0.9,
                        "metadata": {
                            "document_id": document_id,
                            **record.metadata.model_dump(),
                            "stage_ids": tags,
                        },
                    }
                )
        return hits[:k]

    async def list_document_ids(self) -> list[str]:
        return sorted(doc_id for doc_id, records in self.chunks.items() if records)

    async def update_stage_ids(self, document_id: str, stage_ids: list[str]) -> int:
        records = self.chunks.get(document_id, [])
        for record in records:
            record.metadata.stage_ids = list(stage_ids) or None
        return len(records)

    async def stats(self) -> dict[str, Any]:
        return {
            "collection": self.collection_name,
            "total_chunks": sum(len(r) for r in self.chunks.values()),
        }


class FakeEmbeddingProvider(EmbeddingProvider):
    """Returns ``[len(text), 1.0]`` per text; raises queued errors first."""

    def __init__(self, errors: Sequence[BaseException] = (), fail_always: BaseException | None = None) -> None:
        self.errors = list(errors)
        self.fail_always = fail_always
        self.calls: list[list[str]] = []

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_always is not None:
            raise self.fail_always
        if self.errors:
            raise self.errors.pop(0)
        return [[float(len(t)), 1.0] for t in texts]


class RecordingSleep:
    """Async sleep replacement that records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def documents() -> FakeDocumentRepository:
    return FakeDocumentRepository()


@pytest.fixture()
def vector_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture()
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def upload_dir(tmp_path: Path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture()
def manager(
    documents: FakeDocumentRepository,
    vector_store: FakeVectorStore,
    provider: FakeEmbeddingProvider,
    sleep: RecordingSleep,
    upload_dir: Path,
) -> DocumentLifecycleManager:
    return DocumentLifecycleManager(
        documents=documents,
        storage=LocalStorage(upload_dir),
        extractors=TextExtractorRegistry(),
        embedder=EmbeddingBatcher(provider, sleep=sleep),
        vector_store=vector_store,
        gate=ConcurrencyGate(max_concurrent=3),
        defaults=ProcessingConfig(chunk_size=200, chunk_overlap=20, max_retries=3, batch_size=2),
    )


@pytest.fixture()
def make_document(documents: FakeDocumentRepository, upload_dir: Path):
    """Write *text* to the upload dir and register a document for it."""

    def _make(
        text: str = "Paragraph one.\n\nParagraph two.",
        *,
        name: str = "notes.txt",
        mime_type: str = "text/plain",
        **fields: Any,
    ) -> Document:
        (upload_dir / name).write_text(text, encoding="utf-8")
        return documents.put(
            Document(storage_key=name, filename=name, original_name=name, mime_type=mime_type, **fields)
        )

    return _make
