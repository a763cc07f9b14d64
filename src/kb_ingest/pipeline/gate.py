"""Bounded set of documents currently being processed."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from kb_ingest.errors import DocumentBusyError

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    """Admits at most *max_concurrent* distinct document ids at a time.

    The gate never blocks or queues: a caller that cannot get a slot is
    told so immediately and decides what to do.  Each gate owns its own
    in-flight set, so independent pipelines (and tests) do not interfere.
    """

    def __init__(self, max_concurrent: int = 3) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self._in_flight: set[str] = set()

    def try_acquire(self, document_id: str) -> bool:
        """Claim a slot for *document_id*; ``False`` if already held or full."""
        if document_id in self._in_flight:
            logger.info("Document %s is already being processed", document_id)
            return False
        if len(self._in_flight) >= self.max_concurrent:
            logger.info(
                "Concurrency limit reached (%d), rejecting document %s",
                self.max_concurrent,
                document_id,
            )
            return False
        self._in_flight.add(document_id)
        return True

    def release(self, document_id: str) -> None:
        """Free the slot held by *document_id*.  Releasing twice is a no-op."""
        self._in_flight.discard(document_id)

    @contextmanager
    def hold(self, document_id: str) -> Iterator[None]:
        """Hold a slot for the duration of the block.

        Raises
        ------
        DocumentBusyError
            When no slot can be acquired.
        """
        if not self.try_acquire(document_id):
            raise DocumentBusyError(document_id)
        try:
            yield
        finally:
            self.release(document_id)

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)
