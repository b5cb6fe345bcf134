"""
Shared fixtures for the transit gateway tests.
"""

import pytest

from shared.config import GatewaySettings
from shared.metrics import MetricsCollector

from service_transit.app.domain import Operation
from service_transit.tests.fakes import FakeBackend, FakeStore


@pytest.fixture
def backend():
    return FakeBackend(results={Operation.STOP: lambda arguments, options: {"id": arguments["id"], "type": "stop"}})


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def metrics():
    return MetricsCollector("transit-gateway-test")


@pytest.fixture
def settings():
    return GatewaySettings(
        redis_url=None,
        env="test",
        log_level="warning",
        health_station_id="900100001",
        request_log_file=None,
        cache_ttls={},
    )
