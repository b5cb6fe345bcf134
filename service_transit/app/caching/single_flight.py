"""
Single-flight request coalescing.

Concurrent callers asking for the same key share one in-flight call and all
observe its outcome. The shared call runs in its own task, so a caller that
goes away does not abort it for the others; it is only cancelled once the
last waiter has left.
"""

import asyncio
import functools
from typing import Any, Awaitable, Callable, Dict, Tuple

from shared.errors import BackendError
from shared.logging import get_logger


class _Flight:
    __slots__ = ("task", "waiters")

    def __init__(self, task: "asyncio.Task[Any]"):
        self.task = task
        self.waiters = 0


def _being_cancelled() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class SingleFlight:
    """Registry of in-flight calls keyed by cache key."""

    def __init__(self, name: str = "default"):
        self.name = name
        self.logger = get_logger(f"transit.single_flight.{name}")
        self._flights: Dict[str, _Flight] = {}
        self._lock = asyncio.Lock()

    def in_flight(self, key: str) -> bool:
        return key in self._flights

    def __len__(self) -> int:
        return len(self._flights)

    async def do(self, key: str, func: Callable[[], Awaitable[Any]]) -> Tuple[Any, bool]:
        """Run ``func`` once per concurrent ``key``.

        Returns ``(result, shared)`` where ``shared`` is True when this caller
        joined a call started by someone else.
        """
        async with self._lock:
            flight = self._flights.get(key)
            shared = flight is not None
            if flight is None:
                flight = _Flight(asyncio.ensure_future(func()))
                self._flights[key] = flight
                flight.task.add_done_callback(functools.partial(self._forget, key, flight))
            flight.waiters += 1

        try:
            result = await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            if flight.task.cancelled() and not _being_cancelled():
                # The shared call was cancelled underneath us.
                raise BackendError("Upstream call was cancelled", details={"key": key})
            raise
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                self.logger.debug("Cancelling abandoned flight", key=key)
                # later callers for this key start a fresh flight
                if self._flights.get(key) is flight:
                    del self._flights[key]
                flight.task.cancel()

        return result, shared

    def _forget(self, key: str, flight: _Flight, task: "asyncio.Task[Any]") -> None:
        if self._flights.get(key) is flight:
            del self._flights[key]
        if not task.cancelled():
            # mark the exception retrieved when nobody was left to await it
            task.exception()
