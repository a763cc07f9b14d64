"""Batch drivers — process every pending document or retry failed ones.

Documents are handled one after another; each outcome is isolated, so a
failing document never stops the rest of the batch.

Run from the command line::

    python -m kb_ingest.pipeline.batch pending
    python -m kb_ingest.pipeline.batch retry --max-attempts 5
"""

from __future__ import annotations

import logging

from kb_ingest.documents.models import BatchSummary, DocumentStatus, ProcessingConfig, RetrySummary
from kb_ingest.pipeline.lifecycle import DocumentLifecycleManager

logger = logging.getLogger(__name__)


async def process_pending_documents(
    manager: DocumentLifecycleManager,
    config: ProcessingConfig | None = None,
) -> BatchSummary:
    """Process every document currently in ``pending`` status."""
    pending = await manager.documents.list_by_status(DocumentStatus.PENDING)
    logger.info("Found %d pending documents", len(pending))

    summary = BatchSummary()
    for document in pending:
        result = await manager.process_document(document.id, config)
        summary.details.append(result)
        if result.success:
            summary.processed += 1
        else:
            summary.failed += 1

    logger.info("Pending batch done: %d processed, %d failed", summary.processed, summary.failed)
    return summary


async def retry_failed_documents(
    manager: DocumentLifecycleManager,
    max_attempts: int = 5,
    config: ProcessingConfig | None = None,
) -> RetrySummary:
    """Reprocess ``error`` documents with fewer than *max_attempts* attempts.

    Documents at or beyond the limit are left alone for manual follow-up.
    """
    retryable = await manager.documents.list_retryable(max_attempts)
    logger.info("Found %d failed documents to retry (max_attempts=%d)", len(retryable), max_attempts)

    summary = RetrySummary()
    for document in retryable:
        summary.retried += 1
        result = await manager.process_document(document.id, config)
        summary.details.append(result)
        if result.success:
            summary.succeeded += 1
        else:
            summary.still_failed += 1

    logger.info(
        "Retry batch done: %d retried, %d succeeded, %d still failed",
        summary.retried,
        summary.succeeded,
        summary.still_failed,
    )
    return summary


# ──────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────


def _config_from_args(args) -> ProcessingConfig | None:  # noqa: ANN001
    overrides = {
        name: getattr(args, name)
        for name in ("chunk_size", "chunk_overlap", "max_retries", "batch_size")
        if getattr(args, name) is not None
    }
    return ProcessingConfig(**overrides) if overrides else None


async def _main(args) -> str:  # noqa: ANN001
    from kb_ingest.config import settings
    from kb_ingest.pipeline.factory import build_pipeline

    pipeline = await build_pipeline(settings)
    config = _config_from_args(args)
    try:
        if args.command == "pending":
            summary = await process_pending_documents(pipeline.manager, config)
        else:
            max_attempts = args.max_attempts or settings.retry_max_attempts
            summary = await retry_failed_documents(pipeline.manager, max_attempts, config)
    finally:
        await pipeline.manager.documents.close()
    return summary.model_dump_json(indent=2)


if __name__ == "__main__":
    import argparse
    import asyncio

    from kb_ingest.config import settings

    parser = argparse.ArgumentParser(description="Knowledge-base document processing")
    parser.add_argument(
        "command",
        choices=["pending", "retry"],
        help="'pending' processes new uploads, 'retry' reprocesses failed documents",
    )
    parser.add_argument("--max-attempts", type=int, default=None, help="Retry limit per document")
    parser.add_argument("--chunk-size", type=int, default=None)
    parser.add_argument("--chunk-overlap", type=int, default=None)
    parser.add_argument("--max-retries", type=int, default=None, help="Embedding attempts per batch")
    parser.add_argument("--batch-size", type=int, default=None, help="Chunks per embedding request")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print(asyncio.run(_main(args)))
