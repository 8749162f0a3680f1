"""Batched, retrying, concurrency-capped access to the embedding model.

:class:`EmbeddingClient` sits between the services (ingestion, retrieval)
and an :class:`~src.interfaces.embedding_provider.IEmbeddingProvider`:

* **Batching** -- input texts are split into batches of ``batch_size``
  (100 by default); results are reassembled in input order.
* **Concurrency cap** -- each upstream request holds a slot of the
  process-wide :class:`~src.utils.concurrency.EmbeddingConcurrencyPool`,
  so many documents ingesting at once cannot exceed the provider's limits.
* **Retry with backoff** -- transient failures (rate limit, timeout,
  connection loss, 5xx) are retried with exponential backoff.  The slot is
  released while sleeping.  Exhaustion, or any non-transient error, raises
  :class:`~src.utils.errors.EmbeddingFailure`.
* **Shape check** -- every response must carry one vector per input, each
  of the provider's declared dimension.
"""

from __future__ import annotations

import asyncio

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.concurrency import EmbeddingConcurrencyPool
from src.utils.errors import (
    EmbeddingFailure,
    KnowledgeBaseError,
    ProviderUnavailableError,
    RateLimitError,
)

logger = structlog.get_logger(logger_name=__name__)

_TRANSIENT_ERRORS = (RateLimitError, ProviderUnavailableError)


class EmbeddingClient:
    """Turns lists of texts into lists of vectors, reliably.

    Parameters
    ----------
    provider:
        The embedding model adapter.
    pool:
        Process-wide concurrency cap shared with every other client.
    batch_size:
        Maximum texts per upstream request.
    max_attempts:
        Attempts per batch, including the first one.
    base_delay:
        Backoff before the second attempt, in seconds; doubles each retry.
    max_delay:
        Upper bound on any single backoff.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        pool: EmbeddingConcurrencyPool,
        batch_size: int = 100,
        max_attempts: int = 4,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._provider = provider
        self._pool = pool
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay

    @property
    def dimension(self) -> int:
        return self._provider.get_dimension()

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, returning one vector per text in the same order.

        Raises
        ------
        EmbeddingFailure
            If any batch fails permanently or returns malformed vectors.
        """
        if not texts:
            return []

        batches = [
            texts[start : start + self._batch_size]
            for start in range(0, len(texts), self._batch_size)
        ]
        # The pool slot is taken per attempt inside _embed_batch, so batches
        # are gathered without a limiter here.  One failed batch fails the
        # whole call, and its siblings are cancelled so they stop retrying
        # and release their pool slots.
        tasks = [
            asyncio.ensure_future(self._embed_batch(batch, number))
            for number, batch in enumerate(batches)
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        vectors: list[list[float]] = []
        for batch_vectors in results:
            vectors.extend(batch_vectors)
        return vectors

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single text (e.g. a retrieval query)."""
        vectors = await self.embed([text])
        return vectors[0]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        return min(self._base_delay * (2 ** (attempt - 1)), self._max_delay)

    async def _embed_batch(self, batch: list[str], batch_number: int) -> list[list[float]]:
        last_error: KnowledgeBaseError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                async with self._pool.slot():
                    vectors = await self._provider.embed(batch)
            except _TRANSIENT_ERRORS as exc:
                last_error = exc
                if attempt == self._max_attempts:
                    break
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "embedding_retry",
                    provider=self.provider_name,
                    batch=batch_number,
                    attempt=attempt,
                    backoff_s=delay,
                    error=str(exc),
                )
                await asyncio.sleep(delay)
                continue
            except EmbeddingFailure:
                raise
            except KnowledgeBaseError as exc:
                raise EmbeddingFailure(
                    message=f"Embedding request failed: {exc.message}",
                    provider_name=self.provider_name,
                    cause=exc,
                ) from exc

            self._check_shape(batch, vectors)
            return vectors

        logger.error(
            "embedding_retries_exhausted",
            provider=self.provider_name,
            batch=batch_number,
            attempts=self._max_attempts,
            error=str(last_error),
        )
        raise EmbeddingFailure(
            message=(
                f"Embedding failed after {self._max_attempts} attempts: "
                f"{last_error.message if last_error else 'unknown error'}"
            ),
            provider_name=self.provider_name,
            cause=last_error,
        )

    def _check_shape(self, batch: list[str], vectors: list[list[float]]) -> None:
        if len(vectors) != len(batch):
            raise EmbeddingFailure(
                message=f"Provider returned {len(vectors)} vectors for {len(batch)} texts",
                provider_name=self.provider_name,
            )
        expected = self.dimension
        for vector in vectors:
            if len(vector) != expected:
                raise EmbeddingFailure(
                    message=f"Provider returned a {len(vector)}-dimensional vector, expected {expected}",
                    provider_name=self.provider_name,
                )
