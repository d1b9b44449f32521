"""Rate-limit rule definitions."""

from dataclasses import dataclass
from enum import Enum

from turnstile.errors import ConfigurationError

DEFAULT_RULE_KEY = "default"


class RateLimitAlgorithm(Enum):
    """Admission-control strategies.

    FIXED_WINDOW
        Time is cut into wall-clock aligned windows; each window admits
        ``max_requests``.
    USER_FIXED_WINDOW
        Like FIXED_WINDOW, but a caller's window starts at their first
        request instead of a wall-clock boundary.
    MINIMUM_COOLDOWN_FIXED_WINDOW / MINIMUM_COOLDOWN_USER_FIXED_WINDOW
        Once a caller exhausts a window they are not rescued by the next
        boundary; they wait a full window after their last admitted
        request.
    SLIDING_WINDOW
        At most ``max_requests`` admissions in any trailing window.
    TOKEN_BUCKET
        Tokens refill continuously at ``max_requests / window_ms`` per
        millisecond, capped at ``max_requests``.
    """

    FIXED_WINDOW = "fixed_window"
    USER_FIXED_WINDOW = "user_fixed_window"
    MINIMUM_COOLDOWN_FIXED_WINDOW = "minimum_cooldown_fixed_window"
    MINIMUM_COOLDOWN_USER_FIXED_WINDOW = "minimum_cooldown_user_fixed_window"
    SLIDING_WINDOW = "sliding_window"
    TOKEN_BUCKET = "token_bucket"


@dataclass(frozen=True, slots=True)
class RateLimitRule:
    """One admission rule.

    ``key`` distinguishes this rule from others applied to the same
    request; every caller gets its own state per key.

    Usage::

        RateLimitRule("login", max_requests=5, window_ms=60_000)
        RateLimitRule("burst", 10, 1_000, RateLimitAlgorithm.TOKEN_BUCKET)
    """

    key: str
    max_requests: int
    window_ms: int
    algorithm: RateLimitAlgorithm = RateLimitAlgorithm.USER_FIXED_WINDOW

    def __post_init__(self) -> None:
        if not self.key:
            msg = "Rate-limit rules need a non-empty key."
            raise ConfigurationError(msg)
        if self.max_requests < 0:
            msg = f"Rate-limit rule {self.key!r}: max_requests must be >= 0, got {self.max_requests}."
            raise ConfigurationError(msg)
        if not isinstance(self.algorithm, RateLimitAlgorithm):
            msg = f"Rate-limit rule {self.key!r}: unknown algorithm {self.algorithm!r}."
            raise ConfigurationError(msg)
