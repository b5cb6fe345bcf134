"""
Gateway caching package.

Resolves transit operations from a Redis-backed cache or the live backend.
Entries are short-lived and expire through the store's own TTL; failures
are never cached.
"""

from .cache_keys import make_cache_key
from .cache_store import CacheStore, RedisCacheStore, build_cache_store
from .resolver import (
    CachedResolver,
    PassthroughResolver,
    Resolution,
    Resolver,
    build_resolver,
)
from .single_flight import SingleFlight

__all__ = [
    "CacheStore",
    "CachedResolver",
    "PassthroughResolver",
    "RedisCacheStore",
    "Resolution",
    "Resolver",
    "SingleFlight",
    "build_cache_store",
    "build_resolver",
    "make_cache_key",
]
