"""
Adapters package for the transit gateway.

Contains the HTTP client for the upstream journey-planning backend. The
adapter encapsulates:

- Base URL, user agent and path/query mapping per operation
- Retry policy and circuit breaker
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .transit_client import TransitClient, UpstreamUnavailableError

__all__ = [
    "TransitClient",
    "UpstreamUnavailableError",
]
