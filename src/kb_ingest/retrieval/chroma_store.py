"""Chroma implementation of the vector-store abstraction.

Chroma metadata values must be flat ``str`` / ``int`` / ``float`` /
``bool``, so a chunk's stage tags are stored three ways: ``stage_ids`` as a
comma-joined string (round-tripped back to a list), ``has_stage_ids``, and
one ``stage_<ID>`` boolean per tag so stage filters can run server-side.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Any

import chromadb

from kb_ingest.config import settings
from kb_ingest.retrieval.base import VectorStoreBase
from kb_ingest.retrieval.models import ChunkRecord, MetadataFilter

logger = logging.getLogger(__name__)

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "in": "$in",
    "nin": "$nin",
}

_STAGE_PREFIX = "stage_"


def _build_chroma_where(
    filters: list[MetadataFilter] | None,
    stage_id: str | None = None,
) -> dict[str, Any] | None:
    """Convert filters (plus an optional stage constraint) to Chroma ``where`` syntax."""
    clauses: list[dict[str, Any]] = []
    for f in filters or []:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if stage_id:
        clauses.append(
            {
                "$or": [
                    {"has_stage_ids": {"$eq": False}},
                    {f"{_STAGE_PREFIX}{stage_id}": {"$eq": True}},
                ]
            }
        )

    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _stage_fields(stage_ids: Iterable[str], previous: Iterable[str] = ()) -> dict[str, Any]:
    tags = list(stage_ids)
    fields: dict[str, Any] = {"stage_ids": ",".join(tags), "has_stage_ids": bool(tags)}
    for old in previous:
        fields[f"{_STAGE_PREFIX}{old}"] = False
    for tag in tags:
        fields[f"{_STAGE_PREFIX}{tag}"] = True
    return fields


def _decode_stage_ids(meta: dict[str, Any]) -> list[str]:
    raw = meta.get("stage_ids") or ""
    return [tag for tag in raw.split(",") if tag]


def _to_chroma_metadata(document_id: str, chunk: ChunkRecord) -> dict[str, Any]:
    meta = chunk.metadata
    flat: dict[str, Any] = {
        "document_id": document_id,
        "original_name": meta.original_name,
        "chunk_index": meta.chunk_index,
        "total_chunks": meta.total_chunks,
    }
    flat.update(_stage_fields(meta.stage_ids or []))
    return flat


def _from_chroma_metadata(meta: dict[str, Any] | None) -> dict[str, Any]:
    meta = dict(meta or {})
    stage_ids = _decode_stage_ids(meta)
    cleaned = {
        k: v for k, v in meta.items() if not k.startswith(_STAGE_PREFIX) and k != "has_stage_ids"
    }
    cleaned["stage_ids"] = stage_ids
    return cleaned


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed chunk store.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host / port:
        Chroma server address, used when no *client* is given.
    client:
        Pre-built Chroma client (``chromadb.EphemeralClient()`` in tests).
    distance_metric:
        ``cosine`` | ``l2`` | ``ip`` — fixed when the collection is created.
    upsert_batch_size:
        Max records per upsert call (Chroma cap ≈ 41 666).
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        client: Any = None,
        distance_metric: str = "cosine",
        upsert_batch_size: int = 5000,
    ) -> None:
        super().__init__(collection_name)
        self._host = host
        self._port = port
        self._client = client
        self._collection: Any = None
        self.distance_metric = distance_metric
        self.upsert_batch_size = upsert_batch_size

    # -- VectorStoreBase overrides --------------------------------------------

    async def init(self) -> None:
        if self._collection is not None:
            return
        if self._client is None:
            self._client = await asyncio.to_thread(chromadb.HttpClient, host=self._host, port=self._port)
        self._collection = await asyncio.to_thread(
            self._client.get_or_create_collection,
            name=self.collection_name,
            metadata={"hnsw:space": self.distance_metric},
            embedding_function=None,
        )
        logger.info("Chroma collection %r ready", self.collection_name)

    async def insert_chunks(self, document_id: str, chunks: Sequence[ChunkRecord]) -> int:
        collection = await self._require_collection()
        ids = [f"{document_id}:{c.metadata.chunk_index}" for c in chunks]
        embeddings = [c.embedding for c in chunks]
        documents = [c.content for c in chunks]
        metadatas = [_to_chroma_metadata(document_id, c) for c in chunks]

        for start in range(0, len(ids), self.upsert_batch_size):
            end = start + self.upsert_batch_size
            await asyncio.to_thread(
                collection.upsert,
                ids=ids[start:end],
                embeddings=embeddings[start:end],
                documents=documents[start:end],
                metadatas=metadatas[start:end],
            )
        logger.info("Inserted %d chunks for document %s", len(ids), document_id)
        return len(ids)

    async def delete_by_document_id(self, document_id: str) -> int:
        collection = await self._require_collection()
        ids = await self._chunk_ids(collection, document_id)
        if ids:
            await asyncio.to_thread(collection.delete, ids=ids)
        logger.info("Deleted %d chunks for document %s", len(ids), document_id)
        return len(ids)

    async def count_by_document_id(self, document_id: str) -> int:
        collection = await self._require_collection()
        return len(await self._chunk_ids(collection, document_id))

    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        stage_id: str | None = None,
    ) -> list[dict[str, Any]]:
        collection = await self._require_collection()
        results = await asyncio.to_thread(
            collection.query,
            query_embeddings=[query_embedding],
            n_results=k,
            where=_build_chroma_where(filters, stage_id),
            include=["documents", "metadatas", "distances"],
        )

        hits: list[dict[str, Any]] = []
        ids = (results.get("ids") or [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        for chunk_id, content, meta, dist in zip(ids, docs, metas, distances):
            hits.append(
                {
                    "id": chunk_id,
                    "content": content or "",
                    "score": self._score(dist),
                    "metadata": _from_chroma_metadata(meta),
                }
            )
        return hits

    async def list_document_ids(self) -> list[str]:
        collection = await self._require_collection()
        result = await asyncio.to_thread(collection.get, include=["metadatas"])
        seen = {(meta or {}).get("document_id") for meta in result.get("metadatas") or []}
        return sorted(doc_id for doc_id in seen if doc_id)

    async def update_stage_ids(self, document_id: str, stage_ids: list[str]) -> int:
        collection = await self._require_collection()
        result = await asyncio.to_thread(
            collection.get, where={"document_id": document_id}, include=["metadatas"]
        )
        ids = result.get("ids") or []
        if not ids:
            return 0
        metadatas = [
            {**(meta or {}), **_stage_fields(stage_ids, previous=_decode_stage_ids(meta or {}))}
            for meta in result.get("metadatas") or []
        ]
        await asyncio.to_thread(collection.update, ids=ids, metadatas=metadatas)
        logger.info("Updated stage_ids on %d chunks of document %s", len(ids), document_id)
        return len(ids)

    async def stats(self) -> dict[str, Any]:
        collection = await self._require_collection()
        total = await asyncio.to_thread(collection.count)
        return {
            "collection": self.collection_name,
            "total_chunks": total,
            "total_documents": len(await self.list_document_ids()),
        }

    async def health_check(self) -> bool:
        try:
            await self.init()
            await asyncio.to_thread(self._client.heartbeat)
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    # -- internals ------------------------------------------------------------

    async def _require_collection(self) -> Any:
        if self._collection is None:
            await self.init()
        return self._collection

    @staticmethod
    async def _chunk_ids(collection: Any, document_id: str) -> list[str]:
        result = await asyncio.to_thread(
            collection.get, where={"document_id": document_id}, include=["metadatas"]
        )
        return list(result.get("ids") or [])

    def _score(self, distance: float) -> float:
        if self.distance_metric == "cosine":
            return 1.0 - distance
        # L2 / inner product distances: map onto a 0-1 similarity score.
        return 1.0 / (1.0 + distance)
