"""Embedding generation — provider adapters and the retrying batcher."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING

import openai

from kb_ingest.errors import (
    EmbeddingError,
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
)
from kb_ingest.retry import retry_with_backoff

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from kb_ingest.config import Settings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)
_PERMANENT_ERRORS: tuple[type[BaseException], ...] = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.BadRequestError,
    openai.NotFoundError,
    openai.UnprocessableEntityError,
)


def is_transient(exc: BaseException) -> bool:
    """Network / timeout / rate-limit failures."""
    return getattr(exc, "transient", False) or isinstance(exc, _TRANSIENT_ERRORS)


def is_retryable(exc: BaseException) -> bool:
    """Everything except errors the provider marked as permanent."""
    return getattr(exc, "retryable", True)


class EmbeddingProvider(ABC):
    """Turns a list of texts into vectors, one per text, in order.

    Implementations raise :class:`TransientProviderError` for failures worth
    retrying with a long pause and :class:`PermanentProviderError` for
    failures that will not go away by retrying (bad credentials, invalid
    input).
    """

    @abstractmethod
    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        ...


class LangChainEmbeddingProvider(EmbeddingProvider):
    """Adapter for any LangChain :class:`~langchain_core.embeddings.Embeddings`.

    Covers local sentence-transformers (``HuggingFaceEmbeddings``) and
    OpenAI-compatible HTTP APIs (``OpenAIEmbeddings``), mapping SDK errors
    onto the provider error classes.
    """

    def __init__(self, embeddings: Embeddings) -> None:
        self._embeddings = embeddings

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        try:
            vectors = await self._embeddings.aembed_documents(list(texts))
        except ProviderError:
            raise
        except _PERMANENT_ERRORS as exc:
            raise PermanentProviderError(str(exc)) from exc
        except _TRANSIENT_ERRORS as exc:
            raise TransientProviderError(str(exc)) from exc
        return [[float(x) for x in vector] for vector in vectors]


def get_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Return the provider selected by ``settings.embedding_provider``.

    Model libraries are imported here so that importing this module does
    not load torch / sentence-transformers.
    """
    if settings.embedding_provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        if settings.embedding_base_url:
            logger.info("Using OpenAI-compatible embeddings endpoint: %s", settings.embedding_base_url)
        embeddings = OpenAIEmbeddings(
            model=settings.embedding_model,
            api_key=settings.embedding_api_key or None,
            base_url=settings.embedding_base_url or None,
            # Retries are handled by EmbeddingBatcher.
            max_retries=0,
            # Compatible-mode endpoints expect raw strings, not token ids.
            check_embedding_ctx_length=False,
        )
    else:
        from langchain_huggingface import HuggingFaceEmbeddings

        embeddings = HuggingFaceEmbeddings(model_name=settings.embedding_model)
    return LangChainEmbeddingProvider(embeddings)


class EmbeddingBatcher:
    """Embeds chunks batch by batch with per-batch retry and backoff.

    Batches run sequentially to respect upstream rate limits, and the
    returned vectors are aligned 1:1 with the input chunks.

    Parameters
    ----------
    provider:
        The embedding backend.
    transient_backoff_base / default_backoff_base:
        Backoff base in seconds for transient and for other retryable errors.
    max_backoff:
        Cap on any single wait.
    throttle_delay:
        Pause between successful batches.
    sleep:
        Awaitable sleep; tests inject a recorder to avoid real waits.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        transient_backoff_base: float = 5.0,
        default_backoff_base: float = 3.0,
        max_backoff: float = 30.0,
        throttle_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self.transient_backoff_base = transient_backoff_base
        self.default_backoff_base = default_backoff_base
        self.max_backoff = max_backoff
        self.throttle_delay = throttle_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, provider: EmbeddingProvider, settings: Settings) -> EmbeddingBatcher:
        return cls(
            provider,
            transient_backoff_base=settings.transient_backoff_base,
            default_backoff_base=settings.default_backoff_base,
            max_backoff=settings.max_backoff,
            throttle_delay=settings.throttle_delay,
        )

    def backoff_base(self, exc: BaseException) -> float:
        return self.transient_backoff_base if is_transient(exc) else self.default_backoff_base

    async def embed_with_retry(
        self,
        chunks: Sequence[str],
        batch_size: int = 20,
        max_retries: int = 3,
        on_progress: ProgressCallback | None = None,
    ) -> list[list[float]]:
        """Embed *chunks* in order.

        Raises
        ------
        EmbeddingError
            When one batch fails *max_retries* times (or fails permanently).
            Nothing embedded so far is returned.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")

        total = len(chunks)
        vectors: list[list[float]] = []
        for index, start in enumerate(range(0, total, batch_size)):
            if index > 0 and self.throttle_delay > 0:
                await self._sleep(self.throttle_delay)

            batch = list(chunks[start : start + batch_size])
            vectors.extend(await self._embed_batch(index, batch, max_retries))

            logger.info(
                "Embedded %d / %d chunks (%.0f%%)",
                len(vectors),
                total,
                100.0 * len(vectors) / total,
            )
            if on_progress is not None:
                on_progress(len(vectors), total)
        return vectors

    async def _embed_batch(self, index: int, batch: list[str], max_retries: int) -> list[list[float]]:
        attempts = 0

        async def attempt() -> list[list[float]]:
            nonlocal attempts
            attempts += 1
            result = await self._provider.embed(batch)
            if len(result) != len(batch):
                raise ProviderError(f"Provider returned {len(result)} vectors for {len(batch)} texts")
            return result

        try:
            return await retry_with_backoff(
                attempt,
                max_retries,
                self.backoff_base,
                is_retryable,
                max_delay=self.max_backoff,
                sleep=self._sleep,
            )
        except Exception as exc:
            logger.error("Embedding batch %d failed after %d attempt(s): %s", index, attempts, exc)
            raise EmbeddingError(index, exc, attempts) from exc
