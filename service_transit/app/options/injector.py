"""
Request option injection.

Maps selected query parameters onto backend call options. Only parameters
named in the rules table are interpreted; everything else is left alone for
the route to forward as plain arguments.
"""

from typing import Any, Callable, Dict, FrozenSet, Mapping, MutableMapping, Optional

from shared.errors import MalformedOptionError
from shared.logging import get_logger

from service_transit.app.domain import Operation
from .literal import LiteralSyntaxError, parse_literal


# operation -> {query parameter: option name}
DEFAULT_OPTION_RULES: Dict[Operation, Dict[str, str]] = {
    Operation.JOURNEYS: {"transferInfo": "transferInfo"},
}


class OptionInjector:
    """Parses structured query parameters into the per-request options bag."""

    def __init__(
        self,
        rules: Optional[Mapping[Operation, Mapping[str, str]]] = None,
        parser: Callable[[str], Any] = parse_literal,
    ):
        source = DEFAULT_OPTION_RULES if rules is None else rules
        self.rules: Dict[Operation, Dict[str, str]] = {
            Operation(operation): dict(params) for operation, params in source.items()
        }
        self.parser = parser
        self.logger = get_logger("transit.options")

    def consumed_parameters(self, operation: Operation) -> FrozenSet[str]:
        """Query parameters this injector interprets for ``operation``."""
        return frozenset(self.rules.get(Operation(operation), {}))

    def inject(
        self,
        operation: Operation,
        raw_query_params: Mapping[str, Any],
        options: MutableMapping[str, Any],
    ) -> None:
        """Parse recognized parameters into ``options``.

        Raises MalformedOptionError when a recognized parameter does not
        parse; nothing is written to ``options`` for that parameter.
        """
        rules = self.rules.get(Operation(operation))
        if not rules:
            return

        for parameter, option_name in rules.items():
            if parameter not in raw_query_params:
                continue
            raw = raw_query_params[parameter]
            if isinstance(raw, (list, tuple)):
                raise MalformedOptionError(parameter, ",".join(map(str, raw)), "parameter given more than once")
            try:
                options[option_name] = self.parser(raw)
            except LiteralSyntaxError as exc:
                self.logger.info(
                    "Rejected malformed option",
                    parameter=parameter,
                    value=raw,
                    error=str(exc),
                )
                raise MalformedOptionError(parameter, raw, str(exc)) from exc
