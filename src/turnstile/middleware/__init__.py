"""Middleware protocol."""

from turnstile.middleware.protocol import Middleware, Next

__all__ = ["Middleware", "Next"]
