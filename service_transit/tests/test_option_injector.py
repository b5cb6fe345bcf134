"""
Tests for request option injection.
"""

import pytest

from shared.errors import MalformedOptionError, ValidationError
from service_transit.app.domain import Operation
from service_transit.app.options import OptionInjector


class TestOptionInjector:
    """Test cases for OptionInjector."""

    @pytest.fixture
    def injector(self):
        return OptionInjector()

    def test_transfer_info_is_parsed_for_journeys(self, injector):
        options = {}

        injector.inject(Operation.JOURNEYS, {"from": "a", "to": "b", "transferInfo": "mode:slow,max:3"}, options)

        assert options == {"transferInfo": {"mode": "slow", "max": 3}}

    def test_nested_transfer_info(self, injector):
        options = {}

        injector.inject(Operation.JOURNEYS, {"transferInfo": "key:value,key2:[a,b]"}, options)

        assert options["transferInfo"] == {"key": "value", "key2": ["a", "b"]}

    def test_absent_parameter_leaves_options_alone(self, injector):
        options = {"existing": 1}

        injector.inject(Operation.JOURNEYS, {"from": "a", "to": "b"}, options)

        assert options == {"existing": 1}

    def test_other_operations_are_untouched(self, injector):
        options = {}

        injector.inject(Operation.DEPARTURES, {"transferInfo": ")bad("}, options)

        assert options == {}

    def test_malformed_value_raises(self, injector):
        options = {}

        with pytest.raises(MalformedOptionError) as exc_info:
            injector.inject(Operation.JOURNEYS, {"transferInfo": ")bad("}, options)

        error = exc_info.value
        assert isinstance(error, ValidationError)
        assert error.status_code == 400
        assert error.code == "MALFORMED_OPTION"
        assert error.parameter == "transferInfo"
        assert error.details["value"] == ")bad("
        assert options == {}

    def test_empty_value_raises(self, injector):
        with pytest.raises(MalformedOptionError):
            injector.inject(Operation.JOURNEYS, {"transferInfo": ""}, {})

    def test_repeated_parameter_raises(self, injector):
        options = {}

        with pytest.raises(MalformedOptionError) as exc_info:
            injector.inject(Operation.JOURNEYS, {"transferInfo": ["mode:slow", "max:3"]}, options)

        assert exc_info.value.details["value"] == "mode:slow,max:3"
        assert options == {}

    def test_consumed_parameters(self, injector):
        assert injector.consumed_parameters(Operation.JOURNEYS) == frozenset({"transferInfo"})
        assert injector.consumed_parameters(Operation.RADAR) == frozenset()

    def test_custom_rules(self):
        injector = OptionInjector(rules={"radar": {"frames": "frames"}})
        options = {}

        injector.inject(Operation.RADAR, {"frames": "[1,2,3]"}, options)
        injector.inject(Operation.JOURNEYS, {"transferInfo": "mode:slow"}, options)

        assert options == {"frames": [1, 2, 3]}
