"""Turnstile application class.

Routes and rate-limit bindings may be added at any time, including
while requests are being served. Middleware and the default rate limit
are fixed when the app starts serving.
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from turnstile._internal.asgi import Receive, Scope, Send
from turnstile._internal.types import Handler
from turnstile.auth import AccessLevel, AuthenticationHandler
from turnstile.config import AppConfig
from turnstile.dispatch import Dispatcher
from turnstile.errors import ConfigurationError
from turnstile.fields import DEFAULT_FIELDS_HEADER, FieldSpec
from turnstile.middleware.protocol import Middleware, Next
from turnstile.ratelimit.registry import ALLOWED, Admission, RateLimitRegistry
from turnstile.ratelimit.rule import DEFAULT_RULE_KEY, RateLimitAlgorithm, RateLimitRule
from turnstile.routing.pattern import CompiledPattern
from turnstile.routing.route import RequestMethod, Resolution, Route
from turnstile.routing.router import RouteTable
from turnstile.server.discovery import discovery_handler
from turnstile.server.handler import build_pipeline, handle_request

logger = logging.getLogger("turnstile.app")


class App:
    """The turnstile application.

    Usage::

        app = App(AppConfig(rate_limit_enabled=True, rate_limit_max_requests=60))

        @app.route("/users/{id}")
        def user(request, user_id):
            return {"id": user_id}

        @app.route(
            "/login",
            method=RequestMethod.POST,
            rate_limits=[RateLimitRule("login", 5, 60_000)],
        )
        async def login(request):
            ...

    Thread safety:
        The route table and the rate-limit registry are safe to extend
        while serving. The middleware tuple is built once, on the first
        request, with a Lock + double-check so exactly one thread does it.
    """

    __slots__ = (
        "_dispatcher",
        "_freeze_lock",
        "_frozen",
        "_middleware",
        "_middleware_list",
        "_pipeline",
        "_rate_limit_lock",
        "_rate_limits",
        "_shutdown_hooks",
        "_startup_hooks",
        "config",
        "discovery_enabled",
        "routes",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        auth_handler: AuthenticationHandler | None = None,
    ) -> None:
        self.config: AppConfig = config or AppConfig()
        self.routes = RouteTable()
        self._rate_limits: RateLimitRegistry | None = None
        self._middleware_list: list[Middleware] = []
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()
        self._rate_limit_lock: threading.Lock = threading.Lock()

        # Compiled state, set during _freeze()
        self._middleware: tuple[Callable[..., Any], ...] = ()
        self._pipeline: Next | None = None

        cfg = self.config
        if cfg.rate_limit_enabled:
            self._rate_limits = RateLimitRegistry(
                RateLimitRule(
                    DEFAULT_RULE_KEY,
                    cfg.rate_limit_max_requests,
                    cfg.rate_limit_window_ms,
                    cfg.rate_limit_algorithm,
                ),
                idle_ttl_ms=cfg.rate_limit_idle_ttl_ms,
            )

        self._dispatcher = Dispatcher(
            self.routes,
            self._rate_limits,
            auth_handler,
            announce_retry_after=cfg.announce_retry_after,
            default_content_type=cfg.default_content_type,
            filter_preflight=cfg.filter_preflight,
        )

        self.discovery_enabled: bool = cfg.discovery_endpoint
        if cfg.discovery_endpoint:
            self.add_route(
                cfg.discovery_path,
                discovery_handler(self),
                description="Lists all currently available endpoints.",
            )

    # -- Route registration --

    def route(
        self,
        template: str,
        *,
        method: RequestMethod | str = RequestMethod.GET,
        access: AccessLevel = AccessLevel.PUBLIC,
        rate_limits: Iterable[RateLimitRule] = (),
        description: str = "",
    ) -> Callable[[Handler], Handler]:
        """Register a route handler via decorator.

        Args:
            template: Path template. Use ``{name}`` for path variables.
            method: HTTP verb, or ``RequestMethod.ANY``. Defaults to GET.
            access: Who may call the route. Defaults to PUBLIC.
            rate_limits: Extra rules bound to this template, checked in
                addition to the app-wide default rule.
            description: Shown by endpoint discovery and ``turnstile routes``.

        The handler is called as ``handler(request, *path_args)``.
        """

        def decorator(func: Handler) -> Handler:
            self.add_route(
                template,
                func,
                method=method,
                access=access,
                rate_limits=rate_limits,
                description=description,
            )
            return func

        return decorator

    def field_route(
        self,
        template: str,
        *,
        method: RequestMethod | str = RequestMethod.GET,
        access: AccessLevel = AccessLevel.PUBLIC,
        required: Iterable[str] = (),
        optional: Iterable[str] = (),
        defaults: Iterable[str] = (),
        header_name: str = DEFAULT_FIELDS_HEADER,
        rate_limits: Iterable[RateLimitRule] = (),
        description: str = "",
    ) -> Callable[[Handler], Handler]:
        """Register a field-selection route via decorator.

        The client picks optional fields with a comma-separated header
        (``X-Fields`` by default). The handler returns a
        ``FieldResponse``, a ``dict`` or a JSON ``str``.
        """
        fields = FieldSpec.create(required, optional, defaults, header_name)

        def decorator(func: Handler) -> Handler:
            self.add_route(
                template,
                func,
                method=method,
                access=access,
                rate_limits=rate_limits,
                description=description,
                fields=fields,
            )
            return func

        return decorator

    def add_route(
        self,
        template: str,
        handler: Handler,
        *,
        method: RequestMethod | str = RequestMethod.GET,
        access: AccessLevel = AccessLevel.PUBLIC,
        rate_limits: Iterable[RateLimitRule] = (),
        description: str = "",
        fields: FieldSpec | None = None,
    ) -> Route:
        """Register a route imperatively. Returns the compiled Route.

        Raises:
            ConfigurationError: If the template or a rule is invalid, or
                a rule key is already bound with different limits.
        """
        route = Route(
            template=template,
            method=RequestMethod.parse(method),
            handler=handler,
            access_level=access,
            rate_limits=tuple(rate_limits),
            description=description,
            fields=fields,
        )
        if route.rate_limits:
            self._bind_rate_limits(route.pattern, route.rate_limits)
        self.routes.add(route)
        return route

    # -- Rate limiting --

    @property
    def rate_limits(self) -> RateLimitRegistry | None:
        """The app's rate-limit registry, or None when nothing is limited."""
        return self._rate_limits

    def bind_rate_limit(self, template: str | CompiledPattern, rule: RateLimitRule) -> None:
        """Apply ``rule`` to every request whose path matches ``template``."""
        self._bind_rate_limits(template, (rule,))

    def _bind_rate_limits(
        self, template: str | CompiledPattern, rules: Iterable[RateLimitRule]
    ) -> None:
        # All or nothing; the registry is created on first use.
        with self._rate_limit_lock:
            registry = self._rate_limits
            if registry is None:
                registry = RateLimitRegistry(idle_ttl_ms=self.config.rate_limit_idle_ttl_ms)
                registry.bind_all(template, rules)
                self._set_registry(registry)
            else:
                registry.bind_all(template, rules)

    def use_rate_limit(
        self,
        max_requests: int,
        window_ms: int,
        algorithm: RateLimitAlgorithm = RateLimitAlgorithm.USER_FIXED_WINDOW,
    ) -> None:
        """Set the app-wide default rule, applied to every path.

        Existing bindings are kept; counters start fresh.
        """
        self._check_not_frozen()
        registry = RateLimitRegistry(
            RateLimitRule(DEFAULT_RULE_KEY, max_requests, window_ms, algorithm),
            idle_ttl_ms=self.config.rate_limit_idle_ttl_ms,
        )
        with self._rate_limit_lock:
            if self._rate_limits is not None:
                for binding in self._rate_limits.bindings:
                    registry.bind(binding.pattern, binding.rule)
            self._set_registry(registry)

    def check_rate_limit(self, caller_key: str, path: str) -> Admission:
        """Run the rate limiter for ``caller_key`` at ``path``. Consumes."""
        if self._rate_limits is None:
            return ALLOWED
        return self._rate_limits.check(caller_key, path)

    def _set_registry(self, registry: RateLimitRegistry) -> None:
        self._rate_limits = registry
        self._dispatcher.rate_limits = registry

    # -- Authentication --

    def set_authentication_handler(self, handler: AuthenticationHandler | None) -> None:
        """Install the collaborator consulted for AUTHENTICATED and SYSTEM routes."""
        self._dispatcher.auth_handler = handler

    @property
    def auth_handler(self) -> AuthenticationHandler | None:
        return self._dispatcher.auth_handler

    # -- Middleware and lifecycle --

    def add_middleware(self, middleware: Middleware) -> None:
        """Add a middleware. First added runs outermost."""
        self._check_not_frozen()
        self._middleware_list.append(middleware)

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register a sync or async hook run at ASGI lifespan startup."""
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register a sync or async hook run at ASGI lifespan shutdown."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- Queries --

    def resolve(self, method: str, path: str) -> Resolution:
        """Resolve ``method`` and ``path`` against the route table."""
        return self.routes.resolve(method, path)

    # -- Serving --

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Serve the app with uvicorn (``pip install turnstile[server]``)."""
        from turnstile.server.runner import run_server

        self._ensure_frozen()
        run_server(
            self,
            host or self.config.host,
            port or self.config.port,
            log_level=self.config.log_level,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        if scope["type"] != "http":
            return

        self._ensure_frozen()
        assert self._pipeline is not None
        await handle_request(
            scope,
            receive,
            send,
            pipeline=self._pipeline,
            forwarded_header=self.config.forwarded_header,
        )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        self._ensure_frozen()

        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    for hook in self._startup_hooks:
                        result = hook()
                        if inspect.isawaitable(result):
                            await result
                except Exception as exc:
                    logger.exception("Startup hook failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                for hook in self._shutdown_hooks:
                    result = hook()
                    if inspect.isawaitable(result):
                        await result
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Internal --

    def _ensure_frozen(self) -> None:
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        # MUST only be called while holding _freeze_lock.
        self._middleware = tuple(self._middleware_list)
        self._pipeline = build_pipeline(self._dispatcher.dispatch, self._middleware)
        self._frozen = True
        logger.debug(
            "App ready: %d route(s), %d middleware, rate limiting %s",
            len(self.routes),
            len(self._middleware),
            "on" if self._rate_limits is not None else "off",
        )

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Add middleware, hooks and the default rate limit before the first request."
            )
            raise ConfigurationError(msg)
