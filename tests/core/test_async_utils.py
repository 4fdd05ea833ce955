"""Tests for async helpers."""

import asyncio

import pytest

from toonshelf.core.async_utils import gather_settled, run_async_with_timeout


class TestGatherSettled:
    @pytest.mark.asyncio
    async def test_results_in_input_order(self) -> None:
        async def value(v: int, delay: float) -> int:
            await asyncio.sleep(delay)
            return v

        results = await gather_settled([value(1, 0.02), value(2, 0.0), value(3, 0.01)])
        assert results == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_failure_does_not_short_circuit(self) -> None:
        finished: list[str] = []

        async def fail() -> None:
            raise RuntimeError("boom")

        async def slow() -> str:
            await asyncio.sleep(0.01)
            finished.append("slow")
            return "ok"

        results = await gather_settled([fail(), slow()])
        assert isinstance(results[0], RuntimeError)
        assert results[1] == "ok"
        assert finished == ["slow"]

    @pytest.mark.asyncio
    async def test_empty(self) -> None:
        assert await gather_settled([]) == []

    @pytest.mark.asyncio
    async def test_limit_bounds_concurrency(self) -> None:
        running = 0
        peak = 0

        async def work() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await gather_settled([work() for _ in range(10)], limit=3)
        assert peak == 3

    @pytest.mark.asyncio
    async def test_cancelled_caller_lets_operations_finish(self) -> None:
        started = asyncio.Event()
        finished: list[int] = []

        async def op(i: int) -> None:
            started.set()
            await asyncio.sleep(0.05)
            finished.append(i)

        task = asyncio.create_task(gather_settled([op(1), op(2)]))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.1)
        assert sorted(finished) == [1, 2]


def test_run_async_with_timeout_returns_result() -> None:
    async def answer() -> int:
        await asyncio.sleep(0)
        return 42

    assert run_async_with_timeout(answer()) == 42
