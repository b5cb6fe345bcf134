"""
Health checks for the transit gateway.
"""

from .aggregator import HealthAggregator, HealthStatus

__all__ = [
    "HealthAggregator",
    "HealthStatus",
]
