"""FastAPI application exposing knowledge-base processing as a REST API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from kb_ingest.config import settings
from kb_ingest.documents.models import (
    BatchSummary,
    Document,
    DocumentStatus,
    ProcessingConfig,
    ProcessingResult,
    RetrySummary,
)
from kb_ingest.errors import DocumentNotFoundError
from kb_ingest.pipeline.batch import process_pending_documents, retry_failed_documents
from kb_ingest.pipeline.factory import Pipeline, build_pipeline
from kb_ingest.pipeline.health import HealthReport, check_health, cleanup_orphans, mark_for_reprocessing
from kb_ingest.pipeline.lifecycle import DocumentLifecycleManager
from kb_ingest.pipeline.stages import StageUpdateResult, update_stage_ids
from kb_ingest.retrieval.models import RetrievalResult
from kb_ingest.retrieval.retriever import SemanticRetriever

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(level=settings.log_level)
    logger.info("Knowledge base API starting")
    yield
    if _pipeline is not None:
        await _pipeline.manager.documents.close()
    logger.info("Knowledge base API stopped")


app = FastAPI(
    title="Knowledge Base Ingestion API",
    version="0.1.0",
    description="Admin interface to document processing and retrieval for the curriculum knowledge base.",
    lifespan=lifespan,
)

_STATUS_BY_CODE = {"not_found": 404, "busy": 409}


# ── Dependencies ──────────────────────────────────────────────────────
_pipeline: Pipeline | None = None


async def get_pipeline() -> Pipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = await build_pipeline(settings)
    return _pipeline


async def get_manager(pipeline: Pipeline = Depends(get_pipeline)) -> DocumentLifecycleManager:
    return pipeline.manager


async def get_retriever(pipeline: Pipeline = Depends(get_pipeline)) -> SemanticRetriever:
    return pipeline.retriever


# ── Request / Response schemas ────────────────────────────────────────
class RetryRequest(BaseModel):
    """Retry one document, or every failed document under the attempt limit."""

    document_id: str | None = None
    max_attempts: int = Field(default=settings.retry_max_attempts, ge=1)
    config: ProcessingConfig | None = None


class StageUpdateRequest(BaseModel):
    stage_ids: list[str]


class HealthAction(BaseModel):
    action: Literal["cleanup_orphans", "reprocess"]
    document_ids: list[str] = []


class HealthActionResponse(BaseModel):
    message: str
    affected: int
    document_ids: list[str] = []


class SearchRequest(BaseModel):
    """Semantic query, optionally scoped to a curriculum stage."""

    query: str
    k: int = Field(default=5, ge=1, le=50)
    stage_id: str | None = None
    document_ids: list[str] | None = None


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.get("/documents", response_model=list[Document])
async def list_documents(
    status: DocumentStatus | None = None,
    manager: DocumentLifecycleManager = Depends(get_manager),
) -> list[Document]:
    if status is None:
        return await manager.documents.list_all()
    return await manager.documents.list_by_status(status)


@app.post("/documents/{document_id}/process", response_model=ProcessingResult)
async def process_document(
    document_id: str,
    config: ProcessingConfig | None = None,
    manager: DocumentLifecycleManager = Depends(get_manager),
) -> ProcessingResult:
    """Process one document now; failures map to 404 / 409 / 500."""
    result = await manager.process_document(document_id, config)
    if not result.success:
        raise HTTPException(
            status_code=_STATUS_BY_CODE.get(result.error_code or "", 500),
            detail=result.model_dump(mode="json"),
        )
    return result


@app.post("/documents/process-pending", response_model=BatchSummary)
async def process_pending(
    config: ProcessingConfig | None = None,
    manager: DocumentLifecycleManager = Depends(get_manager),
) -> BatchSummary:
    return await process_pending_documents(manager, config)


@app.post("/documents/retry", response_model=RetrySummary)
async def retry_documents(
    request: RetryRequest,
    manager: DocumentLifecycleManager = Depends(get_manager),
) -> RetrySummary:
    if request.document_id is None:
        return await retry_failed_documents(manager, request.max_attempts, request.config)

    result = await manager.process_document(request.document_id, request.config)
    if result.error_code == "not_found":
        raise HTTPException(status_code=404, detail=result.error)
    return RetrySummary(
        retried=1,
        succeeded=int(result.success),
        still_failed=int(not result.success),
        details=[result],
    )


@app.put("/documents/{document_id}/stages", response_model=StageUpdateResult)
async def put_stages(
    document_id: str,
    request: StageUpdateRequest,
    manager: DocumentLifecycleManager = Depends(get_manager),
) -> StageUpdateResult:
    try:
        return await update_stage_ids(manager.documents, manager.vector_store, document_id, request.stage_ids)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/kb/health", response_model=HealthReport)
async def kb_health(manager: DocumentLifecycleManager = Depends(get_manager)) -> HealthReport:
    """Consistency between document records and stored chunks."""
    return await check_health(manager.documents, manager.vector_store)


@app.post("/kb/health", response_model=HealthActionResponse)
async def kb_health_fix(
    request: HealthAction,
    manager: DocumentLifecycleManager = Depends(get_manager),
) -> HealthActionResponse:
    if request.action == "cleanup_orphans":
        removed, orphans = await cleanup_orphans(manager.documents, manager.vector_store)
        return HealthActionResponse(
            message=f"Cleaned up {removed} orphan chunks from {len(orphans)} document sets",
            affected=removed,
            document_ids=orphans,
        )

    if not request.document_ids:
        raise HTTPException(status_code=400, detail="'reprocess' requires document_ids")
    marked = await mark_for_reprocessing(manager.documents, request.document_ids)
    return HealthActionResponse(
        message=f"Marked {marked} documents for reprocessing",
        affected=marked,
        document_ids=request.document_ids,
    )


@app.post("/search", response_model=list[RetrievalResult])
async def search(
    request: SearchRequest,
    retriever: SemanticRetriever = Depends(get_retriever),
) -> list[RetrievalResult]:
    """Stage-aware semantic search over processed chunks."""
    return await retriever.search(
        request.query,
        k=request.k,
        stage_id=request.stage_id,
        document_ids=request.document_ids,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
