"""
Domain types shared across the transit gateway.
"""

from .operations import DEFAULT_CACHE_TTLS, Operation

__all__ = [
    "DEFAULT_CACHE_TTLS",
    "Operation",
]
