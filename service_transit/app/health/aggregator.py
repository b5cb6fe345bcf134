"""
Aggregate health of the gateway's dependencies.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from shared.config import GatewaySettings
from shared.errors import HealthCheckTimeoutError
from shared.logging import get_logger

from service_transit.app.caching.cache_store import CacheStore
from service_transit.app.caching.resolver import BackendClient
from service_transit.app.domain import Operation


@dataclass(frozen=True)
class HealthStatus:
    """Outcome of one health evaluation."""

    healthy: bool
    checked_at: datetime
    components: Dict[str, bool]
    errors: Dict[str, str] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.healthy

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.healthy,
            "checked_at": self.checked_at.isoformat().replace("+00:00", "Z"),
            "components": dict(self.components),
            "errors": dict(self.errors),
        }


class HealthAggregator:
    """Probes the backend and, when configured, the cache store.

    Holds only read-only handles, so concurrent checks never interfere.
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        station_id: str,
        backend_timeout: float,
        store: Optional[CacheStore] = None,
        cache_timeout: float = 1.0,
    ):
        self.client = client
        self.station_id = station_id
        self.backend_timeout = backend_timeout
        self.store = store
        self.cache_timeout = cache_timeout
        self.logger = get_logger("transit.health")

    @classmethod
    def from_settings(
        cls,
        settings: GatewaySettings,
        client: BackendClient,
        store: Optional[CacheStore] = None,
    ) -> "HealthAggregator":
        return cls(
            client,
            station_id=settings.health_station_id,
            backend_timeout=settings.upstream_timeout,
            store=store,
            cache_timeout=settings.health_cache_timeout,
        )

    async def check_health(self) -> HealthStatus:
        """Run all configured probes concurrently and AND their results."""
        probes = [("backend", self._probe_backend, self.backend_timeout)]
        if self.store is not None:
            probes.append(("cache", self._probe_cache, self.cache_timeout))

        outcomes = await asyncio.gather(
            *(self._run_probe(name, probe, timeout) for name, probe, timeout in probes)
        )

        components: Dict[str, bool] = {}
        errors: Dict[str, str] = {}
        for (name, _, _), (ok, error) in zip(probes, outcomes):
            components[name] = ok
            if error:
                errors[name] = error

        return HealthStatus(
            healthy=all(components.values()),
            checked_at=datetime.now(timezone.utc),
            components=components,
            errors=errors,
        )

    async def _run_probe(
        self,
        name: str,
        probe: Callable[[], Awaitable[bool]],
        timeout: float,
    ) -> Tuple[bool, Optional[str]]:
        try:
            ok = await asyncio.wait_for(probe(), timeout)
        except asyncio.TimeoutError:
            error = HealthCheckTimeoutError(name, timeout)
            self.logger.warning("Health probe timed out", component=name, timeout=timeout)
            return False, error.message
        except Exception as exc:
            self.logger.error("Health probe failed", component=name, error=str(exc))
            return False, str(exc) or type(exc).__name__

        if not ok:
            self.logger.warning("Health probe returned unhealthy", component=name)
            return False, "unexpected probe response"
        return True, None

    async def _probe_backend(self) -> bool:
        stop = await self.client.call(Operation.STOP, {"id": self.station_id}, {})
        return isinstance(stop, dict) and str(stop.get("id")) == self.station_id

    async def _probe_cache(self) -> bool:
        return bool(await self.store.ping())
