"""
Shared utilities for the transit gateway.

This package holds the building blocks the service is assembled from:

- config: Gateway configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Gateway error types and responses
- retry: Retry helper for upstream calls
- circuit_breaker: Upstream call protection
- base_service: FastAPI application skeleton

Do not import from service_* packages into shared/.
"""
