"""Shared concurrency primitives for the embedding stage.

Every ingestion task and every retrieval call goes through one embedding
model, so the number of in-flight embedding requests is capped process-wide
rather than per document.  The cap is an explicit object created once at
startup (see ``src.main._build_all``) and injected into the
:class:`~src.services.embedding_client.EmbeddingClient`; nothing reconfigures
it per request.

Two pieces are exposed:

1. **EmbeddingConcurrencyPool** -- a bounded semaphore with a lifecycle
   (``slot()`` to borrow capacity, ``close()`` at shutdown).

2. **throttled_gather** -- ``asyncio.gather`` bounded by a semaphore, used
   by the CLI to upload several files at once.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, TypeVar

import structlog

from src.utils.errors import ConfigurationError, EmbeddingFailure
from src.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


class EmbeddingConcurrencyPool:
    """Process-wide cap on concurrent embedding requests.

    Parameters
    ----------
    max_concurrency:
        Maximum number of embedding batches in flight at once.  Must be
        at least 1.
    """

    def __init__(self, max_concurrency: int = 4) -> None:
        if max_concurrency < 1:
            raise ConfigurationError(
                f"max_concurrency must be >= 1, got {max_concurrency}"
            )
        self._size = max_concurrency
        self._semaphore = asyncio.BoundedSemaphore(max_concurrency)
        self._in_flight = 0
        self._closed = False

    @property
    def size(self) -> int:
        return self._size

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one unit of embedding capacity for the duration of the block."""
        if self._closed:
            # Terminal: retrying cannot reopen the pool.
            raise EmbeddingFailure(
                message="Embedding pool is closed",
                provider_name="embedding_pool",
            )
        async with self._semaphore:
            self._in_flight += 1
            try:
                yield
            finally:
                self._in_flight -= 1

    def close(self) -> None:
        """Refuse new work.  Batches already holding a slot finish normally."""
        if not self._closed:
            self._closed = True
            _logger.info("embedding_pool_closed", size=self._size, in_flight=self._in_flight)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    limiter: asyncio.Semaphore,
    return_exceptions: bool = False,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``limiter``'s value at a time.

    Results come back in input order, as with ``asyncio.gather``.  Do not
    pass work that itself waits on an :class:`EmbeddingConcurrencyPool`
    slot through a pool-sized limiter; the two caps are independent.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with limiter:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)
