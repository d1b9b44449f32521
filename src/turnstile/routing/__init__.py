"""Routing — compiled path templates in a specificity-ordered table.

Static segments beat captures, deeper paths beat shallower ones, and
ties break on the template text, so resolution order never depends on
registration order.
"""

from turnstile.routing.pattern import CompiledPattern, compile_template, normalize_path
from turnstile.routing.route import (
    Matched,
    MethodMismatch,
    NoMatch,
    RequestMethod,
    Resolution,
    Route,
)
from turnstile.routing.router import RouteTable

__all__ = [
    "CompiledPattern",
    "Matched",
    "MethodMismatch",
    "NoMatch",
    "RequestMethod",
    "Resolution",
    "Route",
    "RouteTable",
    "compile_template",
    "normalize_path",
]
