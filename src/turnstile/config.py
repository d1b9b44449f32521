"""Application configuration.

AppConfig is a frozen dataclass: immutable after creation, no string-key
dict lookups.
"""

from dataclasses import dataclass

from turnstile.errors import ConfigurationError
from turnstile.http.client_ip import DEFAULT_FORWARDED_HEADER
from turnstile.http.response import JSON_CONTENT_TYPE
from turnstile.ratelimit.rule import RateLimitAlgorithm

_LOG_LEVELS = frozenset({"critical", "error", "warning", "info", "debug", "trace"})


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have defaults. Override what you need::

        config = AppConfig(
            rate_limit_enabled=True,
            rate_limit_max_requests=60,
            rate_limit_window_ms=60_000,
        )
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    log_level: str = "info"

    # Default rate limit, applied to every path when enabled
    rate_limit_enabled: bool = False
    rate_limit_max_requests: int = 100
    rate_limit_window_ms: int = 60_000
    rate_limit_algorithm: RateLimitAlgorithm = RateLimitAlgorithm.USER_FIXED_WINDOW
    rate_limit_idle_ttl_ms: int | None = None  # None = never evict caller state
    announce_retry_after: bool = True

    # Caller identity; None ignores forwarding headers
    forwarded_header: str | None = DEFAULT_FORWARDED_HEADER

    # Dispatch
    filter_preflight: bool = True  # OPTIONS answered 202 without routing
    default_content_type: str = JSON_CONTENT_TYPE

    # Endpoint discovery
    discovery_endpoint: bool = False
    discovery_path: str = "/endpoints"

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ConfigurationError(f"port must be between 0 and 65535, got {self.port}")
        if self.log_level.lower() not in _LOG_LEVELS:
            raise ConfigurationError(
                f"Unknown log_level {self.log_level!r}. "
                f"Expected one of: {', '.join(sorted(_LOG_LEVELS))}"
            )
        if self.rate_limit_max_requests < 0:
            raise ConfigurationError("rate_limit_max_requests must be >= 0")
        if self.rate_limit_window_ms < 0:
            raise ConfigurationError("rate_limit_window_ms must be >= 0")
        if self.rate_limit_idle_ttl_ms is not None and self.rate_limit_idle_ttl_ms <= 0:
            raise ConfigurationError("rate_limit_idle_ttl_ms must be positive or None")
        if not isinstance(self.rate_limit_algorithm, RateLimitAlgorithm):
            # Accept the enum value as a string, e.g. from a CLI flag
            try:
                algorithm = RateLimitAlgorithm(self.rate_limit_algorithm)
            except ValueError:
                raise ConfigurationError(
                    f"Unknown rate_limit_algorithm {self.rate_limit_algorithm!r}"
                ) from None
            object.__setattr__(self, "rate_limit_algorithm", algorithm)
        if not self.discovery_path.startswith("/"):
            raise ConfigurationError(
                f"discovery_path must start with '/', got {self.discovery_path!r}"
            )
