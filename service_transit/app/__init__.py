"""
Transit gateway service package.

The gateway fronts a journey-planning backend, adding:
- Caching: Redis-backed results with per-operation TTLs
- Request coalescing: one upstream call per concurrent identical request
- Option injection: structured query parameters parsed into call options
- Health: one signal aggregated from the backend and the cache store

Structure:
- app.main: FastAPI service, routes and wiring.
- app.adapters: HTTP client for the upstream backend.
- app.caching: Cache keys, stores and resolvers.
- app.health: Dependency health aggregation.
- app.options: Structured-literal parsing and option injection.
- app.domain: Transit operations and their cache TTLs.
"""
