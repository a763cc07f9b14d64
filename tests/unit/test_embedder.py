"""Unit tests for embedding providers and the retrying batcher."""

from __future__ import annotations

from collections.abc import Sequence

import httpx
import openai
import pytest

from kb_ingest.errors import EmbeddingError, PermanentProviderError, TransientProviderError
from kb_ingest.ingestion.embedder import (
    EmbeddingBatcher,
    LangChainEmbeddingProvider,
    is_retryable,
    is_transient,
)

_REQUEST = httpx.Request("POST", "https://embeddings.example/v1/embeddings")


class _FailOnText:
    """Provider that fails whenever a batch contains *poison*."""

    def __init__(self, poison: str) -> None:
        self.poison = poison
        self.calls = 0

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls += 1
        if self.poison in texts:
            raise RuntimeError(f"cannot embed {self.poison!r}")
        return [[1.0] for _ in texts]


class _QueuedErrors:
    """Raises the queued errors in order, then succeeds."""

    def __init__(self, errors: Sequence[Exception]) -> None:
        self.errors = list(errors)
        self.calls: list[list[str]] = []

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.errors:
            raise self.errors.pop(0)
        return [[float(len(t))] for t in texts]


def _queued(*errors: Exception) -> _QueuedErrors:
    return _QueuedErrors(errors)


class _ShortProvider:
    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        return [[1.0]] * (len(texts) - 1)


class _FakeLangChainEmbeddings:
    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        if self.exc is not None:
            raise self.exc
        return [[1, 2] for _ in texts]


# ── Error classification ───────────────────────────────────────────────


class TestClassification:
    def test_builtin_network_errors_are_transient(self) -> None:
        assert is_transient(ConnectionError("reset"))
        assert is_transient(TimeoutError())

    def test_provider_errors_carry_their_class(self) -> None:
        assert is_transient(TransientProviderError("rate limited"))
        assert not is_transient(PermanentProviderError("bad key"))
        assert not is_retryable(PermanentProviderError("bad key"))

    def test_unknown_errors_are_retryable_but_not_transient(self) -> None:
        exc = RuntimeError("odd")
        assert is_retryable(exc)
        assert not is_transient(exc)


# ── LangChain adapter ─────────────────────────────────────────────────


class TestLangChainEmbeddingProvider:
    @pytest.mark.asyncio
    async def test_returns_float_vectors(self) -> None:
        provider = LangChainEmbeddingProvider(_FakeLangChainEmbeddings())
        assert await provider.embed(["a", "b"]) == [[1.0, 2.0], [1.0, 2.0]]

    @pytest.mark.asyncio
    async def test_connection_error_becomes_transient(self) -> None:
        provider = LangChainEmbeddingProvider(
            _FakeLangChainEmbeddings(openai.APIConnectionError(request=_REQUEST))
        )
        with pytest.raises(TransientProviderError):
            await provider.embed(["a"])

    @pytest.mark.asyncio
    async def test_auth_error_becomes_permanent(self) -> None:
        response = httpx.Response(401, request=_REQUEST)
        provider = LangChainEmbeddingProvider(
            _FakeLangChainEmbeddings(openai.AuthenticationError("invalid key", response=response, body=None))
        )
        with pytest.raises(PermanentProviderError):
            await provider.embed(["a"])

    @pytest.mark.asyncio
    async def test_other_errors_pass_through(self) -> None:
        provider = LangChainEmbeddingProvider(_FakeLangChainEmbeddings(KeyError("data")))
        with pytest.raises(KeyError):
            await provider.embed(["a"])


# ── EmbeddingBatcher ──────────────────────────────────────────────────


class TestEmbeddingBatcher:
    @pytest.mark.asyncio
    async def test_vectors_align_with_chunks(self, provider, sleep) -> None:
        batcher = EmbeddingBatcher(provider, sleep=sleep)
        chunks = ["a", "bb", "ccc", "dddd", "eeeee"]
        vectors = await batcher.embed_with_retry(chunks, batch_size=2)
        assert vectors == [[float(len(c)), 1.0] for c in chunks]
        assert [len(call) for call in provider.calls] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_throttles_between_batches_only(self, provider, sleep) -> None:
        batcher = EmbeddingBatcher(provider, sleep=sleep)
        await batcher.embed_with_retry(["a", "b", "c", "d", "e"], batch_size=2)
        assert sleep.delays == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_reports_progress(self, provider, sleep) -> None:
        batcher = EmbeddingBatcher(provider, sleep=sleep)
        progress: list[tuple[int, int]] = []
        await batcher.embed_with_retry(
            ["a", "b", "c", "d", "e"], batch_size=2, on_progress=lambda done, total: progress.append((done, total))
        )
        assert progress == [(2, 5), (4, 5), (5, 5)]

    @pytest.mark.asyncio
    async def test_fail_once_then_succeed(self, sleep) -> None:
        provider = _queued(RuntimeError("flaky"))
        batcher = EmbeddingBatcher(provider, sleep=sleep)
        chunks = ["one", "two", "three"]
        vectors = await batcher.embed_with_retry(chunks, batch_size=3, max_retries=3)
        assert len(vectors) == len(chunks)
        assert len(provider.calls) == 2
        assert sleep.delays == [3.0]

    @pytest.mark.asyncio
    async def test_transient_error_uses_long_backoff(self, sleep) -> None:
        provider = _queued(TransientProviderError("timeout"), ConnectionError("reset"))
        batcher = EmbeddingBatcher(provider, sleep=sleep)
        await batcher.embed_with_retry(["a"], batch_size=1, max_retries=3)
        assert sleep.delays == [5.0, 10.0]

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self, sleep) -> None:
        provider = _queued(PermanentProviderError("invalid api key"))
        batcher = EmbeddingBatcher(provider, sleep=sleep)
        with pytest.raises(EmbeddingError) as info:
            await batcher.embed_with_retry(["a"], batch_size=1, max_retries=3)
        assert len(provider.calls) == 1
        assert info.value.attempts == 1
        assert isinstance(info.value.cause, PermanentProviderError)

    @pytest.mark.asyncio
    async def test_exhausted_retries_name_failing_batch(self, sleep) -> None:
        provider = _FailOnText("poison")
        batcher = EmbeddingBatcher(provider, sleep=sleep)
        with pytest.raises(EmbeddingError) as info:
            await batcher.embed_with_retry(["ok", "fine", "poison", "never"], batch_size=2, max_retries=3)
        assert info.value.batch_index == 1
        assert "batch 1" in str(info.value)
        # one call for batch 0, three for batch 1, none for later batches
        assert provider.calls == 4
        assert sleep.delays == [0.5, 3.0, 6.0]

    @pytest.mark.asyncio
    async def test_vector_count_mismatch_is_an_error(self, sleep) -> None:
        batcher = EmbeddingBatcher(_ShortProvider(), sleep=sleep)
        with pytest.raises(EmbeddingError, match="vectors for"):
            await batcher.embed_with_retry(["a", "b"], batch_size=2, max_retries=2)

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, sleep) -> None:
        provider = _queued(*[TransientProviderError("down")] * 4)
        batcher = EmbeddingBatcher(provider, max_backoff=30.0, sleep=sleep)
        await batcher.embed_with_retry(["a"], batch_size=1, max_retries=5)
        assert sleep.delays == [5.0, 10.0, 20.0, 30.0]

    @pytest.mark.asyncio
    async def test_invalid_batch_size(self, provider, sleep) -> None:
        with pytest.raises(ValueError):
            await EmbeddingBatcher(provider, sleep=sleep).embed_with_retry(["a"], batch_size=0)
