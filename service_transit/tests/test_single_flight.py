"""
Tests for single-flight request coalescing.
"""

import asyncio

import pytest

from shared.errors import BackendError
from service_transit.app.caching.single_flight import SingleFlight


class Counter:
    def __init__(self, delay: float = 0.05, error: Exception = None):
        self.calls = 0
        self.delay = delay
        self.error = error
        self.cancelled = False

    async def __call__(self):
        self.calls += 1
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return {"call": self.calls}


class TestSingleFlight:
    """Test cases for SingleFlight."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_call(self):
        flights = SingleFlight("test")
        func = Counter()

        results = await asyncio.gather(*(flights.do("key", func) for _ in range(10)))

        assert func.calls == 1
        assert all(value == {"call": 1} for value, _ in results)
        assert sum(1 for _, shared in results if not shared) == 1
        assert len(flights) == 0

    @pytest.mark.asyncio
    async def test_distinct_keys_do_not_coalesce(self):
        flights = SingleFlight("test")
        func = Counter()

        await asyncio.gather(flights.do("a", func), flights.do("b", func))

        assert func.calls == 2

    @pytest.mark.asyncio
    async def test_sequential_calls_are_not_coalesced(self):
        flights = SingleFlight("test")
        func = Counter(delay=0)

        await flights.do("key", func)
        value, shared = await flights.do("key", func)

        assert value == {"call": 2}
        assert shared is False

    @pytest.mark.asyncio
    async def test_error_is_delivered_to_every_waiter(self):
        flights = SingleFlight("test")
        func = Counter(error=BackendError("boom"))

        results = await asyncio.gather(
            *(flights.do("key", func) for _ in range(3)),
            return_exceptions=True,
        )

        assert func.calls == 1
        assert all(isinstance(result, BackendError) for result in results)
        assert not flights.in_flight("key")

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_others(self):
        flights = SingleFlight("test")
        func = Counter(delay=0.1)

        leaving = asyncio.create_task(flights.do("key", func))
        staying = asyncio.create_task(flights.do("key", func))
        await asyncio.sleep(0.01)
        leaving.cancel()

        value, shared = await staying

        assert value == {"call": 1}
        assert shared is True
        assert leaving.cancelled()
        assert func.calls == 1
        assert not func.cancelled

    @pytest.mark.asyncio
    async def test_last_waiter_leaving_cancels_the_call(self):
        flights = SingleFlight("test")
        func = Counter(delay=1.0)

        waiter = asyncio.create_task(flights.do("key", func))
        await asyncio.sleep(0.01)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        await asyncio.sleep(0.01)

        assert func.cancelled
        assert not flights.in_flight("key")

    @pytest.mark.asyncio
    async def test_caller_after_abandoned_flight_starts_fresh_call(self):
        flights = SingleFlight("test")
        func = Counter(delay=0.2)

        abandoned = asyncio.create_task(flights.do("key", func))
        await asyncio.sleep(0.05)
        abandoned.cancel()
        with pytest.raises(asyncio.CancelledError):
            await abandoned

        value, shared = await flights.do("key", func)

        assert value == {"call": 2}
        assert shared is False
        assert func.calls == 2
        assert not flights.in_flight("key")

    @pytest.mark.asyncio
    async def test_shared_call_cancelled_underneath_waiters(self):
        flights = SingleFlight("test")
        func = Counter(delay=1.0)

        waiters = [asyncio.create_task(flights.do("key", func)) for _ in range(2)]
        await asyncio.sleep(0.01)
        flights._flights["key"].task.cancel()

        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert all(isinstance(result, BackendError) for result in results)
        assert not flights.in_flight("key")
