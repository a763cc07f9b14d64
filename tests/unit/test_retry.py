"""Unit tests for the generic retry-with-backoff utility."""

from __future__ import annotations

import pytest

from kb_ingest.retry import backoff_delay, retry_with_backoff


class _Flaky:
    def __init__(self, failures: int, exc: Exception | None = None) -> None:
        self.failures = failures
        self.exc = exc or RuntimeError("boom")
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


class TestBackoffDelay:
    @pytest.mark.parametrize(
        ("attempt", "expected"),
        [(1, 3.0), (2, 6.0), (3, 12.0), (4, 24.0), (5, 30.0), (9, 30.0)],
    )
    def test_doubles_and_caps(self, attempt: int, expected: float) -> None:
        assert backoff_delay(attempt, 3.0, 30.0) == expected


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_returns_first_success(self, sleep) -> None:
        op = _Flaky(failures=0)
        assert await retry_with_backoff(op, 3, 1.0, sleep=sleep) == "ok"
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_until_success(self, sleep) -> None:
        op = _Flaky(failures=2)
        assert await retry_with_backoff(op, 3, 5.0, sleep=sleep) == "ok"
        assert op.calls == 3
        assert sleep.delays == [5.0, 10.0]

    @pytest.mark.asyncio
    async def test_reraises_last_error_when_exhausted(self, sleep) -> None:
        op = _Flaky(failures=10, exc=ValueError("still broken"))
        with pytest.raises(ValueError, match="still broken"):
            await retry_with_backoff(op, 3, 1.0, sleep=sleep)
        assert op.calls == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_not_retried(self, sleep) -> None:
        op = _Flaky(failures=10, exc=PermissionError("denied"))
        with pytest.raises(PermissionError):
            await retry_with_backoff(
                op, 5, 1.0, lambda exc: not isinstance(exc, PermissionError), sleep=sleep
            )
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_base_delay_may_depend_on_exception(self, sleep) -> None:
        op = _Flaky(failures=2, exc=TimeoutError("slow"))
        await retry_with_backoff(
            op,
            3,
            lambda exc: 5.0 if isinstance(exc, TimeoutError) else 3.0,
            max_delay=8.0,
            sleep=sleep,
        )
        assert sleep.delays == [5.0, 8.0]

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            await retry_with_backoff(_Flaky(failures=0), 0, 1.0)
