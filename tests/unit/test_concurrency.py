"""Unit tests for the shared embedding pool and throttled_gather."""

from __future__ import annotations

import asyncio

import pytest

from src.utils.concurrency import EmbeddingConcurrencyPool, throttled_gather
from src.utils.errors import ConfigurationError, EmbeddingFailure


class TestEmbeddingConcurrencyPool:
    def test_rejects_non_positive_size(self) -> None:
        with pytest.raises(ConfigurationError):
            EmbeddingConcurrencyPool(0)

    async def test_slot_tracks_in_flight(self) -> None:
        pool = EmbeddingConcurrencyPool(2)

        async with pool.slot():
            assert pool.in_flight == 1
        assert pool.in_flight == 0

    async def test_caps_concurrency(self) -> None:
        pool = EmbeddingConcurrencyPool(2)
        peak = 0

        async def _work() -> None:
            nonlocal peak
            async with pool.slot():
                peak = max(peak, pool.in_flight)
                await asyncio.sleep(0.01)

        await asyncio.gather(*(_work() for _ in range(6)))

        assert peak == 2

    async def test_closed_pool_refuses_work(self) -> None:
        pool = EmbeddingConcurrencyPool(1)
        pool.close()
        pool.close()

        assert pool.closed
        with pytest.raises(EmbeddingFailure):
            async with pool.slot():
                pass


class TestThrottledGather:
    async def test_preserves_order(self) -> None:
        async def _value(i: int) -> int:
            await asyncio.sleep(0.001 * (5 - i))
            return i

        results = await throttled_gather([_value(i) for i in range(5)], asyncio.Semaphore(2))

        assert results == [0, 1, 2, 3, 4]

    async def test_limits_parallelism(self) -> None:
        running = 0
        peak = 0

        async def _work() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await throttled_gather([_work() for _ in range(6)], asyncio.Semaphore(3))

        assert peak == 3

    async def test_return_exceptions(self) -> None:
        async def _fail() -> None:
            raise ValueError("nope")

        async def _ok() -> str:
            return "ok"

        results = await throttled_gather([_ok(), _fail()], asyncio.Semaphore(1), return_exceptions=True)

        assert results[0] == "ok"
        assert isinstance(results[1], ValueError)
