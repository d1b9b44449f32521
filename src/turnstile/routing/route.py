"""Route entity and resolution results."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

from turnstile.auth import AccessLevel
from turnstile.errors import ConfigurationError
from turnstile.fields import FieldSpec
from turnstile.ratelimit.rule import RateLimitRule
from turnstile.routing.pattern import CompiledPattern, compile_template


class RequestMethod(Enum):
    """HTTP verbs a route can be registered for. ``ANY`` matches all."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"
    QUERY = "QUERY"
    HEAD = "HEAD"
    ANY = "ANY"

    @classmethod
    def parse(cls, value: str | RequestMethod) -> RequestMethod:
        if isinstance(value, RequestMethod):
            return value
        try:
            return cls(value.upper())
        except ValueError:
            msg = f"Unknown request method {value!r}."
            raise ConfigurationError(msg) from None

    def accepts(self, method: str) -> bool:
        """Whether a request with verb ``method`` may use this route."""
        return self is RequestMethod.ANY or self.value == method.upper()


@dataclass(frozen=True, slots=True)
class Route:
    """One registered endpoint. Immutable after registration."""

    template: str
    method: RequestMethod
    handler: Callable[..., Any]
    access_level: AccessLevel = AccessLevel.PUBLIC
    rate_limits: tuple[RateLimitRule, ...] = ()
    description: str = ""
    fields: FieldSpec | None = None
    pattern: CompiledPattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pattern", compile_template(self.template))

    @property
    def handler_name(self) -> str:
        return getattr(self.handler, "__qualname__", None) or repr(self.handler)


# -- Resolution results --


@dataclass(frozen=True, slots=True)
class Matched:
    """The path and method matched ``route``.

    ``args`` holds the captured path variables by position, in template
    order.
    """

    route: Route
    args: tuple[str, ...] = ()

    def named(self) -> dict[str, str]:
        """Pair the captures with the template's placeholder names."""
        return dict(zip(self.route.pattern.param_names, self.args, strict=True))


@dataclass(frozen=True, slots=True)
class MethodMismatch:
    """The path matched at least one route, but none for this verb."""

    allowed: frozenset[str]

    @property
    def allow_header(self) -> str:
        return ", ".join(sorted(self.allowed))


@dataclass(frozen=True, slots=True)
class NoMatch:
    """No route pattern matched the path."""


Resolution: TypeAlias = Matched | MethodMismatch | NoMatch

NO_MATCH = NoMatch()
