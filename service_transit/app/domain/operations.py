"""
Transit operations exposed by the gateway.
"""

from enum import Enum
from typing import Dict


class Operation(str, Enum):
    """Read-only journey-planning operations supported by the backend."""

    LOCATIONS = "locations"
    NEARBY = "nearby"
    REACHABLE_FROM = "reachableFrom"
    STOP = "stop"
    DEPARTURES = "departures"
    ARRIVALS = "arrivals"
    JOURNEYS = "journeys"
    REFRESH_JOURNEY = "refreshJourney"
    TRIP = "trip"
    TRIPS_BY_NAME = "tripsByName"
    RADAR = "radar"


# Seconds. Station metadata changes rarely; realtime data goes stale fast.
DEFAULT_CACHE_TTLS: Dict[Operation, int] = {
    Operation.LOCATIONS: 3600,
    Operation.NEARBY: 3600,
    Operation.REACHABLE_FROM: 60,
    Operation.STOP: 3600,
    Operation.DEPARTURES: 60,
    Operation.ARRIVALS: 60,
    Operation.JOURNEYS: 60,
    Operation.REFRESH_JOURNEY: 60,
    Operation.TRIP: 30,
    Operation.TRIPS_BY_NAME: 60,
    Operation.RADAR: 10,
}
