"""Turnstile exception hierarchy.

Only genuinely exceptional paths raise. Routing misses, method mismatches,
rate-limit denials and access denials are result values (see
``turnstile.routing.route`` and ``turnstile.ratelimit.registry``).
"""

from dataclasses import dataclass


class TurnstileError(Exception):
    """Base for all turnstile-specific errors."""


class ConfigurationError(TurnstileError):
    """Raised when a route template, rate-limit rule, or config is invalid.

    Surfaces at registration time, never while serving a request.
    """


@dataclass(frozen=True, slots=True)
class HTTPError(TurnstileError):
    """An error that maps directly to an HTTP status code.

    Raised by handlers or authentication collaborators to abort a request.
    The dispatcher converts it to a response with the same status and
    headers instead of treating it as a handler fault.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)
