"""
Resolvers satisfy transit operations from the cache or the live backend.

Callers only see the ``Resolver`` capability. ``build_resolver`` picks the
implementation once at startup: ``CachedResolver`` when a cache store is
configured, ``PassthroughResolver`` otherwise. Both coalesce concurrent
identical calls.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Protocol

from shared.config import GatewaySettings
from shared.errors import BackendError, CacheUnavailableError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from service_transit.app.domain import DEFAULT_CACHE_TTLS, Operation
from .cache_keys import make_cache_key
from .cache_store import CacheStore
from .single_flight import SingleFlight


SOURCE_CACHE = "cache"
SOURCE_BACKEND = "backend"


class BackendClient(Protocol):
    async def call(
        self,
        operation: Operation,
        arguments: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        ...


@dataclass(frozen=True)
class Resolution:
    """Result of resolving one operation call."""

    value: Any
    source: str
    stored_at: Optional[str] = None

    @property
    def from_cache(self) -> bool:
        return self.source == SOURCE_CACHE


class Resolver(Protocol):
    async def resolve(
        self,
        operation: Operation,
        arguments: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> Resolution:
        ...


class PassthroughResolver:
    """Direct backend calls, coalesced per cache key."""

    def __init__(
        self,
        client: BackendClient,
        *,
        call_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.client = client
        self.call_timeout = call_timeout
        self.metrics = metrics
        self.logger = get_logger("transit.resolver")
        self._flights = SingleFlight("backend")

    async def resolve(
        self,
        operation: Operation,
        arguments: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> Resolution:
        operation = Operation(operation)
        arguments, options = dict(arguments), dict(options or {})
        key = make_cache_key(operation, arguments, options)

        value = await self._coalesced(
            key, operation, lambda: self._call_backend(operation, arguments, options)
        )
        return Resolution(value=value, source=SOURCE_BACKEND)

    async def _coalesced(self, key: str, operation: Operation, func) -> Any:
        value, shared = await self._flights.do(key, func)
        if shared and self.metrics:
            self.metrics.increment_counter("coalesced_requests_total", operation=operation.value)
        return value

    async def _call_backend(
        self,
        operation: Operation,
        arguments: Dict[str, Any],
        options: Dict[str, Any],
    ) -> Any:
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(
                self.client.call(operation, arguments, options),
                self.call_timeout,
            )
        except asyncio.TimeoutError as exc:
            self.logger.error(
                "Backend call timed out",
                operation=operation.value,
                timeout=self.call_timeout,
            )
            raise BackendError(
                f"Upstream call timed out after {self.call_timeout}s",
                details={"operation": operation.value},
            ) from exc
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "backend_call_duration_seconds",
                    time.perf_counter() - start,
                    operation=operation.value,
                )


class CachedResolver(PassthroughResolver):
    """Cache-first resolution with per-operation TTLs.

    Failures are never written. Cache store problems are logged and the
    call falls through to the backend.
    """

    def __init__(
        self,
        client: BackendClient,
        store: CacheStore,
        *,
        ttls: Optional[Mapping[Operation, int]] = None,
        cache_timeout: float = 0.5,
        call_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        super().__init__(client, call_timeout=call_timeout, metrics=metrics)
        self.store = store
        self.cache_timeout = cache_timeout
        self.ttls: Dict[Operation, int] = dict(DEFAULT_CACHE_TTLS)
        if ttls:
            self.ttls.update({Operation(name): int(ttl) for name, ttl in ttls.items()})

    def ttl_for(self, operation: Operation) -> int:
        return self.ttls.get(operation, 0)

    async def resolve(
        self,
        operation: Operation,
        arguments: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> Resolution:
        operation = Operation(operation)
        arguments, options = dict(arguments), dict(options or {})
        key = make_cache_key(operation, arguments, options)
        ttl = self.ttl_for(operation)

        if ttl > 0:
            entry = await self._read_entry(key)
            if entry is not None:
                self._count("cache_hits_total", operation)
                self.logger.debug("Cache hit", key=key)
                return Resolution(
                    value=entry["value"],
                    source=SOURCE_CACHE,
                    stored_at=entry.get("stored_at"),
                )
            self._count("cache_misses_total", operation)

        async def fetch() -> Any:
            value = await self._call_backend(operation, arguments, options)
            if ttl > 0:
                await self._write_entry(key, value, ttl)
            return value

        value = await self._coalesced(key, operation, fetch)
        return Resolution(value=value, source=SOURCE_BACKEND)

    async def _read_entry(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await asyncio.wait_for(self.store.get(key), self.cache_timeout)
        except Exception as exc:
            self._cache_failed(CacheUnavailableError("get", _describe(exc, self.cache_timeout)), key)
            return None

        if raw is None:
            return None

        try:
            entry = json.loads(raw)
        except (TypeError, ValueError, UnicodeDecodeError) as exc:
            self.logger.warning("Discarding undecodable cache entry", key=key, error=str(exc))
            return None

        if not isinstance(entry, dict) or "value" not in entry:
            self.logger.warning("Discarding malformed cache entry", key=key)
            return None
        return entry

    async def _write_entry(self, key: str, value: Any, ttl: int) -> None:
        envelope = {
            "value": value,
            "stored_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "ttl": ttl,
        }
        try:
            payload = json.dumps(envelope, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            self.logger.warning("Result is not cacheable", key=key, error=str(exc))
            return

        try:
            await asyncio.wait_for(self.store.set(key, payload, ttl), self.cache_timeout)
        except Exception as exc:
            self._cache_failed(CacheUnavailableError("set", _describe(exc, self.cache_timeout)), key)
            return
        self.logger.debug("Cached value", key=key, ttl=ttl)

    def _cache_failed(self, error: CacheUnavailableError, key: str) -> None:
        self.logger.warning("Cache store unavailable, falling through", key=key, error=error.message)
        if self.metrics:
            self.metrics.increment_counter("cache_errors_total", stage=error.stage)

    def _count(self, metric: str, operation: Operation) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric, operation=operation.value)


def _describe(exc: Exception, timeout: float) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return f"timed out after {timeout}s"
    return str(exc) or type(exc).__name__


def build_resolver(
    settings: GatewaySettings,
    client: BackendClient,
    store: Optional[CacheStore] = None,
    *,
    metrics: Optional[MetricsCollector] = None,
) -> Resolver:
    """Select the resolver for this process."""
    logger = get_logger("transit.resolver")
    if store is None:
        logger.info("Caching disabled, resolving directly against the backend")
        return PassthroughResolver(client, call_timeout=settings.resolve_timeout, metrics=metrics)

    ttls: Dict[Operation, int] = {}
    for name, ttl in settings.cache_ttls.items():
        try:
            ttls[Operation(name)] = ttl
        except ValueError:
            logger.warning("Ignoring TTL for unknown operation", operation=name)

    logger.info("Caching enabled", ttl_overrides=sorted(op.value for op in ttls))
    return CachedResolver(
        client,
        store,
        ttls=ttls,
        cache_timeout=settings.cache_timeout,
        call_timeout=settings.resolve_timeout,
        metrics=metrics,
    )
