"""Turnstile — routing and rate limiting for HTTP backends.

Path templates resolve by specificity, not registration order; every
caller is checked against a default rate limit plus any rules bound to
the path, using one of six admission algorithms.

Basic usage::

    from turnstile import App, AppConfig, RateLimitRule

    app = App(AppConfig(rate_limit_enabled=True, rate_limit_max_requests=100))

    @app.route("/users/{id}")
    def user(request, user_id):
        return {"id": user_id}

    @app.route("/login", method="POST", rate_limits=[RateLimitRule("login", 5, 60_000)])
    async def login(request):
        ...

    app.run()  # pip install turnstile[server]
"""

# Declare free-threading support (PEP 703)
_Py_mod_gil = 0

__version__ = "0.1.0"
__all__ = [
    "AccessLevel",
    "App",
    "AppConfig",
    "AuthenticationAnswer",
    "AuthenticationHandler",
    "ConfigurationError",
    "FieldResponse",
    "HTTPError",
    "Middleware",
    "Next",
    "RateLimitAlgorithm",
    "RateLimitRegistry",
    "RateLimitRule",
    "Request",
    "RequestMethod",
    "Response",
    "RouteTable",
    "TurnstileError",
]

_LAZY_IMPORTS: dict[str, str] = {
    "AccessLevel": "turnstile.auth",
    "App": "turnstile.app",
    "AppConfig": "turnstile.config",
    "AuthenticationAnswer": "turnstile.auth",
    "AuthenticationHandler": "turnstile.auth",
    "ConfigurationError": "turnstile.errors",
    "FieldResponse": "turnstile.fields",
    "HTTPError": "turnstile.errors",
    "Middleware": "turnstile.middleware.protocol",
    "Next": "turnstile.middleware.protocol",
    "RateLimitAlgorithm": "turnstile.ratelimit.rule",
    "RateLimitRegistry": "turnstile.ratelimit.registry",
    "RateLimitRule": "turnstile.ratelimit.rule",
    "Request": "turnstile.http.request",
    "RequestMethod": "turnstile.routing.route",
    "Response": "turnstile.http.response",
    "RouteTable": "turnstile.routing.router",
    "TurnstileError": "turnstile.errors",
}


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import turnstile`` fast while providing a flat top-level API.
    """
    module_name = _LAZY_IMPORTS.get(name)
    if module_name is None:
        msg = f"module 'turnstile' has no attribute {name!r}"
        raise AttributeError(msg)

    import importlib

    return getattr(importlib.import_module(module_name), name)
