"""Unit tests for bounded fan-out helpers."""

import asyncio

import pytest

from sonar_migrate.concurrency import map_concurrent, split_settled


@pytest.mark.asyncio
class TestMapConcurrent:
    """Test settle-all fan-out."""

    async def test_results_keep_input_order(self):
        async def slow_square(n):
            await asyncio.sleep(0.01 * (5 - n))
            return n * n

        results = await map_concurrent(range(5), slow_square, concurrency=5)

        assert results == [0, 1, 4, 9, 16]

    async def test_failures_do_not_cancel_others(self):
        async def maybe_fail(n):
            if n == 1:
                raise ValueError("bad item")
            return n

        results = await map_concurrent([0, 1, 2], maybe_fail, concurrency=2)

        assert results[0] == 0
        assert isinstance(results[1], ValueError)
        assert results[2] == 2

    async def test_concurrency_is_bounded(self):
        in_flight = 0
        peak = 0

        async def track(_):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

        await map_concurrent(range(10), track, concurrency=3)

        assert peak == 3

    async def test_zero_concurrency_still_runs(self):
        async def identity(n):
            return n

        assert await map_concurrent([1, 2], identity, concurrency=0) == [1, 2]

    async def test_empty_input(self):
        async def identity(n):
            return n

        assert await map_concurrent([], identity, concurrency=4) == []


def test_split_settled():
    error = RuntimeError("x")

    successes, failures = split_settled([1, error, None, 3])

    assert successes == [1, None, 3]
    assert failures == [error]
