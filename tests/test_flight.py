"""Tests for sessionkit.flight module."""

import asyncio

import pytest

from conftest import settle
from sessionkit.errors import OperationInProgressError
from sessionkit.flight import SingleFlight

pytestmark = pytest.mark.asyncio


class TestSingleFlight:
    """Tests for SingleFlight."""

    async def test_reject_runs_when_idle(self):
        flight = SingleFlight()

        async def work():
            return 42

        assert await flight.reject("op", work) == 42
        assert flight.in_progress("op") is False

    async def test_reject_concurrent_call(self):
        flight = SingleFlight()
        gate = asyncio.Event()

        async def work():
            await gate.wait()
            return "done"

        task = asyncio.create_task(flight.reject("op", work))
        await settle()

        with pytest.raises(OperationInProgressError) as exc_info:
            await flight.reject("op", work)
        assert exc_info.value.operation == "op"

        gate.set()
        assert await task == "done"

    async def test_different_keys_do_not_block(self):
        flight = SingleFlight()
        gate = asyncio.Event()

        async def slow():
            await gate.wait()

        async def fast():
            return "fast"

        task = asyncio.create_task(flight.reject("a", slow))
        await settle()

        assert await flight.reject("b", fast) == "fast"
        gate.set()
        await task

    async def test_join_shares_result(self):
        flight = SingleFlight()
        gate = asyncio.Event()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            await gate.wait()
            return calls

        first = asyncio.create_task(flight.join("op", work))
        second = asyncio.create_task(flight.join("op", work))
        await settle()
        gate.set()

        assert await asyncio.gather(first, second) == [1, 1]
        assert calls == 1

    async def test_join_shares_exception(self):
        flight = SingleFlight()
        gate = asyncio.Event()

        async def work():
            await gate.wait()
            raise ValueError("bad")

        first = asyncio.create_task(flight.join("op", work))
        second = asyncio.create_task(flight.join("op", work))
        await settle()
        gate.set()

        results = await asyncio.gather(first, second, return_exceptions=True)
        assert all(isinstance(r, ValueError) for r in results)

    async def test_key_released_after_failure(self):
        flight = SingleFlight()

        async def fail():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            await flight.reject("op", fail)

        assert flight.in_progress("op") is False
