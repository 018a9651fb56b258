"""Unit tests for ragler.utils.concurrency."""

from __future__ import annotations

import asyncio

import pytest

from ragler.utils.concurrency import batch_ranges, throttled_gather


class TestBatchRanges:
    def test_covers_every_index(self) -> None:
        assert batch_ranges(5, 2) == [(0, 2), (2, 4), (4, 5)]

    def test_empty(self) -> None:
        assert batch_ranges(0, 10) == []

    def test_rejects_zero_batch(self) -> None:
        with pytest.raises(ValueError):
            batch_ranges(3, 0)


class TestThrottledGather:
    @pytest.mark.asyncio
    async def test_respects_semaphore_and_keeps_order(self) -> None:
        running = 0
        peak = 0

        async def _work(value: int) -> int:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0)
            running -= 1
            return value * 10

        results = await throttled_gather([_work(i) for i in range(6)], asyncio.Semaphore(2))

        assert results == [0, 10, 20, 30, 40, 50]
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_failures_are_returned(self) -> None:
        async def _boom() -> int:
            raise RuntimeError("nope")

        async def _ok() -> int:
            return 1

        results = await throttled_gather([_ok(), _boom()], asyncio.Semaphore(1))

        assert results[0] == 1
        assert isinstance(results[1], RuntimeError)
