"""
Byte-oriented cache stores with expiry.
"""

from typing import Optional, Protocol

import redis.asyncio as redis

from shared.config import GatewaySettings
from shared.logging import get_logger


class CacheStore(Protocol):
    """Key/value store with per-key expiry."""

    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...


class RedisCacheStore:
    """Cache store backed by Redis; expiry is delegated to ``SET ... EX``."""

    def __init__(self, redis_url: str, *, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.logger = get_logger("transit.cache_store")
        self._redis = client if client is not None else redis.from_url(redis_url)

    async def get(self, key: str) -> Optional[bytes]:
        value = await self._redis.get(key)
        if isinstance(value, str):
            return value.encode("utf-8")
        return value

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        await self._redis.set(key, value, ex=max(1, int(ttl)))

    async def ping(self) -> bool:
        """Return True when Redis answers PONG."""
        return bool(await self._redis.ping())

    async def close(self) -> None:
        """Close Redis connections."""
        try:
            await self._redis.aclose()
        except Exception as exc:  # pragma: no cover - close is best effort
            self.logger.debug("Redis close failed", error=str(exc))


def build_cache_store(settings: GatewaySettings) -> Optional[CacheStore]:
    """Create the configured cache store, or None when caching is disabled."""
    if not settings.caching_enabled:
        return None
    return RedisCacheStore(settings.redis_url)
