"""Rate limiting — six admission algorithms behind one registry.

Rules are plain frozen dataclasses; per-caller state is created lazily
by ``RateLimitRegistry`` and locked per instance.
"""

from turnstile.ratelimit.algorithms import RateLimitState, create_state, now_millis
from turnstile.ratelimit.registry import Admission, Allowed, Denied, RateLimitRegistry
from turnstile.ratelimit.rule import DEFAULT_RULE_KEY, RateLimitAlgorithm, RateLimitRule

__all__ = [
    "DEFAULT_RULE_KEY",
    "Admission",
    "Allowed",
    "Denied",
    "RateLimitAlgorithm",
    "RateLimitRegistry",
    "RateLimitRule",
    "RateLimitState",
    "create_state",
    "now_millis",
]
