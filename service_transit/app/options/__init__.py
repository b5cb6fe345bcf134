"""
Per-request option parsing for backend calls.
"""

from .injector import DEFAULT_OPTION_RULES, OptionInjector
from .literal import LiteralSyntaxError, parse_literal

__all__ = [
    "DEFAULT_OPTION_RULES",
    "LiteralSyntaxError",
    "OptionInjector",
    "parse_literal",
]
