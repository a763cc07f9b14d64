"""Unit tests for the concurrency gate."""

import pytest

from kb_ingest.errors import DocumentBusyError
from kb_ingest.pipeline.gate import ConcurrencyGate


class TestConcurrencyGate:
    def test_acquire_and_release(self) -> None:
        gate = ConcurrencyGate(max_concurrent=2)
        assert gate.try_acquire("a")
        assert "a" in gate
        gate.release("a")
        assert "a" not in gate
        assert len(gate) == 0

    def test_same_id_rejected_while_held(self) -> None:
        gate = ConcurrencyGate()
        assert gate.try_acquire("doc")
        assert not gate.try_acquire("doc")
        assert len(gate) == 1

    def test_rejects_when_full(self) -> None:
        gate = ConcurrencyGate(max_concurrent=3)
        assert all(gate.try_acquire(d) for d in ("a", "b", "c"))
        assert not gate.try_acquire("d")
        gate.release("b")
        assert gate.try_acquire("d")
        assert gate.in_flight == frozenset({"a", "c", "d"})

    def test_release_is_idempotent(self) -> None:
        gate = ConcurrencyGate()
        gate.try_acquire("a")
        gate.release("a")
        gate.release("a")
        gate.release("never-held")
        assert len(gate) == 0

    def test_hold_releases_on_error(self) -> None:
        gate = ConcurrencyGate()
        with pytest.raises(RuntimeError):
            with gate.hold("a"):
                assert "a" in gate
                raise RuntimeError("work failed")
        assert "a" not in gate

    def test_hold_raises_busy(self) -> None:
        gate = ConcurrencyGate(max_concurrent=1)
        gate.try_acquire("a")
        with pytest.raises(DocumentBusyError):
            with gate.hold("b"):
                pass
        assert gate.in_flight == frozenset({"a"})

    def test_gates_are_independent(self) -> None:
        first, second = ConcurrencyGate(max_concurrent=1), ConcurrencyGate(max_concurrent=1)
        assert first.try_acquire("a")
        assert second.try_acquire("a")

    def test_invalid_limit(self) -> None:
        with pytest.raises(ValueError):
            ConcurrencyGate(max_concurrent=0)
