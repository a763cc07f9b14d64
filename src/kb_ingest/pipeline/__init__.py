"""
Pipeline — document lifecycle orchestration and knowledge-base maintenance.

Public surface
--------------
- :class:`ConcurrencyGate` — bounded set of in-flight documents.
- :class:`DocumentLifecycleManager` — processes one document end to end.
- :func:`process_pending_documents`, :func:`retry_failed_documents` — batch drivers.
- :func:`check_health`, :func:`cleanup_orphans`, :func:`mark_for_reprocessing` — consistency tools.
- :func:`update_stage_ids` — retag documents without reprocessing.
"""

from kb_ingest.pipeline.batch import process_pending_documents, retry_failed_documents
from kb_ingest.pipeline.gate import ConcurrencyGate
from kb_ingest.pipeline.health import (
    DocumentHealth,
    HealthReport,
    check_health,
    cleanup_orphans,
    mark_for_reprocessing,
)
from kb_ingest.pipeline.lifecycle import DocumentLifecycleManager
from kb_ingest.pipeline.stages import StageUpdateResult, update_stage_ids

__all__ = [
    "ConcurrencyGate",
    "DocumentHealth",
    "DocumentLifecycleManager",
    "HealthReport",
    "StageUpdateResult",
    "check_health",
    "cleanup_orphans",
    "mark_for_reprocessing",
    "process_pending_documents",
    "retry_failed_documents",
    "update_stage_ids",
]
