"""
Tests for the cached and passthrough resolvers.
"""

import asyncio
import json

import pytest

from shared.errors import BackendError
from service_transit.app.caching import (
    CachedResolver,
    PassthroughResolver,
    build_resolver,
    make_cache_key,
)
from service_transit.app.domain import DEFAULT_CACHE_TTLS, Operation

from service_transit.tests.fakes import FakeBackend


JOURNEY = {"from": "900100001", "to": "900003201"}


class TestCachedResolver:
    """Test cases for CachedResolver."""

    @pytest.fixture
    def resolver(self, backend, store, metrics):
        return CachedResolver(backend, store, cache_timeout=0.1, metrics=metrics)

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, resolver, backend, store, metrics):
        first = await resolver.resolve(Operation.JOURNEYS, JOURNEY)
        second = await resolver.resolve(Operation.JOURNEYS, JOURNEY)

        assert len(backend.calls) == 1
        assert first.source == "backend"
        assert not first.from_cache
        assert second.from_cache
        assert second.value == first.value
        assert second.stored_at.endswith("Z")
        assert metrics.sample("cache_misses_total", operation="journeys") == 1
        assert metrics.sample("cache_hits_total", operation="journeys") == 1

    @pytest.mark.asyncio
    async def test_entry_written_with_operation_ttl(self, resolver, store):
        await resolver.resolve(Operation.JOURNEYS, JOURNEY)

        key = make_cache_key(Operation.JOURNEYS, JOURNEY)
        envelope = json.loads(store.data[key])
        assert store.ttls[key] == DEFAULT_CACHE_TTLS[Operation.JOURNEYS]
        assert envelope["ttl"] == DEFAULT_CACHE_TTLS[Operation.JOURNEYS]
        assert envelope["value"]["operation"] == "journeys"

    @pytest.mark.asyncio
    async def test_argument_order_hits_same_entry(self, resolver, backend):
        await resolver.resolve(Operation.JOURNEYS, {"from": "a", "to": "b"})
        result = await resolver.resolve(Operation.JOURNEYS, {"to": "b", "from": "a"})

        assert result.from_cache
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_options_are_forwarded_and_keyed(self, resolver, backend):
        options = {"transferInfo": {"mode": "slow", "max": 3}}

        await resolver.resolve(Operation.JOURNEYS, JOURNEY, options)
        plain = await resolver.resolve(Operation.JOURNEYS, JOURNEY)

        assert backend.calls[0][2] == options
        assert not plain.from_cache
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_concurrent_misses_coalesce(self, store, metrics):
        backend = FakeBackend(delay=0.05)
        resolver = CachedResolver(backend, store, metrics=metrics)

        results = await asyncio.gather(
            *(resolver.resolve(Operation.DEPARTURES, {"id": "900100001"}) for _ in range(10))
        )

        assert len(backend.calls) == 1
        assert len({json.dumps(result.value, sort_keys=True) for result in results}) == 1
        assert metrics.sample("coalesced_requests_total", operation="departures") == 9

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self, store):
        backend = FakeBackend(delay=0.02)
        backend.error = BackendError("upstream down")
        resolver = CachedResolver(backend, store)

        results = await asyncio.gather(
            *(resolver.resolve(Operation.JOURNEYS, JOURNEY) for _ in range(3)),
            return_exceptions=True,
        )

        assert all(isinstance(result, BackendError) for result in results)
        assert len(backend.calls) == 1
        assert store.data == {}

        backend.error = None
        result = await resolver.resolve(Operation.JOURNEYS, JOURNEY)

        assert result.source == "backend"
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_a_miss(self, resolver, backend, store):
        key = make_cache_key(Operation.JOURNEYS, JOURNEY)
        store.data[key] = b"\xff not json"

        result = await resolver.resolve(Operation.JOURNEYS, JOURNEY)

        assert result.source == "backend"
        assert len(backend.calls) == 1
        assert json.loads(store.data[key])["value"] == result.value

    @pytest.mark.asyncio
    async def test_malformed_envelope_is_a_miss(self, resolver, backend, store):
        key = make_cache_key(Operation.JOURNEYS, JOURNEY)
        store.data[key] = b'{"unexpected": true}'

        result = await resolver.resolve(Operation.JOURNEYS, JOURNEY)

        assert result.source == "backend"
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_store_outage_falls_through(self, resolver, backend, store, metrics):
        store.get_error = ConnectionError("redis down")
        store.set_error = ConnectionError("redis down")

        result = await resolver.resolve(Operation.JOURNEYS, JOURNEY)

        assert result.source == "backend"
        assert len(backend.calls) == 1
        assert metrics.sample("cache_errors_total", stage="get") == 1
        assert metrics.sample("cache_errors_total", stage="set") == 1

    @pytest.mark.asyncio
    async def test_slow_store_read_is_bounded(self, resolver, backend, store, metrics):
        store.get_delay = 5.0

        result = await asyncio.wait_for(resolver.resolve(Operation.JOURNEYS, JOURNEY), 1.0)

        assert result.source == "backend"
        assert metrics.sample("cache_errors_total", stage="get") == 1

    @pytest.mark.asyncio
    async def test_zero_ttl_disables_caching(self, backend, store):
        resolver = CachedResolver(backend, store, ttls={Operation.RADAR: 0})

        await resolver.resolve(Operation.RADAR, {"north": 52.52})
        result = await resolver.resolve(Operation.RADAR, {"north": 52.52})

        assert result.source == "backend"
        assert len(backend.calls) == 2
        assert store.data == {}

    @pytest.mark.asyncio
    async def test_uncacheable_value_is_still_returned(self, store):
        backend = FakeBackend(results={Operation.LOCATIONS: {"raw": object()}})
        resolver = CachedResolver(backend, store)

        result = await resolver.resolve(Operation.LOCATIONS, {"query": "alexanderplatz"})

        assert "raw" in result.value
        assert store.data == {}

    @pytest.mark.asyncio
    async def test_backend_timeout(self, store):
        backend = FakeBackend(delay=1.0)
        resolver = CachedResolver(backend, store, call_timeout=0.05)

        with pytest.raises(BackendError, match="timed out"):
            await resolver.resolve(Operation.JOURNEYS, JOURNEY)
        assert store.data == {}


class TestPassthroughResolver:
    """Test cases for PassthroughResolver."""

    @pytest.mark.asyncio
    async def test_always_calls_backend(self, backend):
        resolver = PassthroughResolver(backend)

        first = await resolver.resolve(Operation.STOP, {"id": "900100001"})
        second = await resolver.resolve(Operation.STOP, {"id": "900100001"})

        assert first.value == {"id": "900100001", "type": "stop"}
        assert second.source == "backend"
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_concurrent_calls_coalesce(self):
        backend = FakeBackend(delay=0.05)
        resolver = PassthroughResolver(backend)

        results = await asyncio.gather(*(resolver.resolve(Operation.TRIP, {"id": "1|2"}) for _ in range(5)))

        assert len(backend.calls) == 1
        assert all(result.value == results[0].value for result in results)

    @pytest.mark.asyncio
    async def test_cancelled_caller_leaves_others_served(self):
        backend = FakeBackend(delay=0.1)
        resolver = PassthroughResolver(backend)

        leaving = asyncio.create_task(resolver.resolve(Operation.TRIP, {"id": "1|2"}))
        staying = asyncio.create_task(resolver.resolve(Operation.TRIP, {"id": "1|2"}))
        await asyncio.sleep(0.01)
        leaving.cancel()

        result = await staying

        assert result.value["operation"] == "trip"
        assert backend.cancelled == 0
        assert len(backend.calls) == 1


class TestBuildResolver:
    """Resolver selection at startup."""

    def test_without_store_is_passthrough(self, settings, backend):
        resolver = build_resolver(settings, backend, None)

        assert type(resolver) is PassthroughResolver
        assert resolver.call_timeout == settings.resolve_timeout

    def test_with_store_is_cached(self, settings, backend, store):
        resolver = build_resolver(settings, backend, store)

        assert isinstance(resolver, CachedResolver)
        assert resolver.ttl_for(Operation.LOCATIONS) == DEFAULT_CACHE_TTLS[Operation.LOCATIONS]

    def test_ttl_overrides(self, settings, backend, store):
        settings = settings.model_copy(update={"cache_ttls": {"journeys": 5, "bogus": 10}})

        resolver = build_resolver(settings, backend, store)

        assert resolver.ttl_for(Operation.JOURNEYS) == 5
        assert resolver.ttl_for(Operation.RADAR) == DEFAULT_CACHE_TTLS[Operation.RADAR]
