"""
Transit gateway service.
"""

import hashlib
import json
from typing import Any, Dict, Optional

from fastapi import Request, Response
from fastapi.routing import APIRoute

from shared.base_service import BaseService
from shared.config import GatewaySettings, get_settings
from shared.logging import set_operation

from service_transit.app.adapters import TransitClient
from service_transit.app.caching import CacheStore, Resolution, Resolver, build_cache_store, build_resolver
from service_transit.app.caching.resolver import BackendClient
from service_transit.app.domain import Operation
from service_transit.app.health import HealthAggregator
from service_transit.app.options import OptionInjector


# path, operation, summary
OPERATION_ROUTES = (
    ("/locations", Operation.LOCATIONS, "Find stops, addresses and POIs by name"),
    ("/locations/nearby", Operation.NEARBY, "Find stops near a location"),
    ("/stops/reachable-from", Operation.REACHABLE_FROM, "Find stops reachable from an address"),
    ("/stops/{id}", Operation.STOP, "Get a stop"),
    ("/stops/{id}/departures", Operation.DEPARTURES, "Get departures at a stop"),
    ("/stops/{id}/arrivals", Operation.ARRIVALS, "Get arrivals at a stop"),
    ("/journeys", Operation.JOURNEYS, "Find journeys from A to B"),
    ("/journeys/{ref}", Operation.REFRESH_JOURNEY, "Refresh a journey"),
    ("/trips/{id}", Operation.TRIP, "Get a trip"),
    ("/trips", Operation.TRIPS_BY_NAME, "Find trips by line name"),
    ("/radar", Operation.RADAR, "Find vehicles in an area"),
)


class TransitGatewayService(BaseService):
    """Journey-planning gateway.

    Collaborators are built once here and injected into the request path;
    pass them in explicitly to override the defaults derived from settings.
    """

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        *,
        client: Optional[BackendClient] = None,
        cache_store: Optional[CacheStore] = None,
        resolver: Optional[Resolver] = None,
        health: Optional[HealthAggregator] = None,
        option_injector: Optional[OptionInjector] = None,
    ):
        super().__init__(settings or get_settings())

        self.client = client or TransitClient.from_settings(self.settings, metrics=self.metrics)
        self.cache_store = cache_store if cache_store is not None else build_cache_store(self.settings)
        self.resolver = resolver or build_resolver(
            self.settings,
            self.client,
            self.cache_store,
            metrics=self.metrics,
        )
        self.health = health or HealthAggregator.from_settings(self.settings, self.client, self.cache_store)
        self.option_injector = option_injector or OptionInjector()

        @self.app.on_event("shutdown")
        async def _shutdown():
            close = getattr(self.client, "close", None)
            if close is not None:
                await close()
            if self.cache_store is not None:
                await self.cache_store.close()

        self._setup_transit_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _setup_transit_routes(self):
        """Register one GET (and HEAD) route per transit operation."""

        for path, operation, summary in OPERATION_ROUTES:
            self.app.add_api_route(
                path,
                self._operation_endpoint(operation),
                methods=["GET", "HEAD"],
                name=operation.value,
                summary=summary,
                tags=["transit"],
            )

        @self.app.get("/")
        async def root():
            """Service description and route index."""
            routes = sorted(
                route.path
                for route in self.app.router.routes
                if isinstance(route, APIRoute) and "transit" in (route.tags or [])
            )
            return {
                "service": self.service_name,
                "version": self.version,
                "caching": self.cache_store is not None,
                "routes": routes,
            }

    def _operation_endpoint(self, operation: Operation):
        async def endpoint(request: Request) -> Response:
            return await self.handle_operation(operation, request)

        endpoint.__name__ = f"{operation.value}_endpoint"
        return endpoint

    async def handle_operation(self, operation: Operation, request: Request) -> Response:
        """Inject options, resolve the call and render the result."""
        set_operation(operation.value)
        query = _collect_query(request)

        options: Dict[str, Any] = {}
        self.option_injector.inject(operation, query, options)

        consumed = self.option_injector.consumed_parameters(operation)
        arguments: Dict[str, Any] = {
            name: value for name, value in query.items() if name not in consumed
        }
        arguments.update(request.path_params)

        resolution = await self.resolver.resolve(operation, arguments, options)
        return self._render(request, resolution)

    def _render(self, request: Request, resolution: Resolution) -> Response:
        body = json.dumps(resolution.value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        etag = f'"{hashlib.sha256(body).hexdigest()}"'

        headers = {
            "ETag": etag,
            "X-Cache": "HIT" if resolution.from_cache else "MISS",
        }
        if resolution.stored_at:
            headers["X-Cached-At"] = resolution.stored_at

        if_none_match = _parse_etags(request.headers.get("If-None-Match"))
        if etag in if_none_match or "*" in if_none_match:
            return Response(status_code=304, headers=headers)
        return Response(content=body, media_type="application/json", headers=headers)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Map the aggregated health status onto per-dependency ok/error."""
        status = await self.health.check_health()
        if not status:
            self.logger.warning("Service unhealthy", **status.to_dict())
        return {
            name: "ok" if healthy else "error"
            for name, healthy in status.components.items()
        }


def _collect_query(request: Request) -> Dict[str, Any]:
    """Query parameters by name; a repeated parameter maps to a list of its values."""
    query: Dict[str, Any] = {}
    for name, value in request.query_params.multi_items():
        if name not in query:
            query[name] = value
        elif isinstance(query[name], list):
            query[name].append(value)
        else:
            query[name] = [query[name], value]
    return query


def _parse_etags(header: Optional[str]) -> set:
    if not header:
        return set()
    return {tag.strip().removeprefix("W/") for tag in header.split(",")}


def create_app(settings: Optional[GatewaySettings] = None, **components):
    """Create FastAPI application."""
    service = TransitGatewayService(settings, **components)
    return service.app


if __name__ == "__main__":
    service = TransitGatewayService()
    service.run()
