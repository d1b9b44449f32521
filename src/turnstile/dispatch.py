"""Request dispatch: route, rate-limit, authorize, invoke, convert.

``Dispatcher.dispatch`` never raises. Routing misses, method
mismatches, rate-limit denials and access denials come back as result
values from the routing and rate-limit layers and are turned into
responses here; handler exceptions are logged and become 500s.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any

from turnstile._internal.invoke import invoke
from turnstile.auth import AccessLevel, AuthenticationAnswer, AuthenticationHandler
from turnstile.errors import HTTPError
from turnstile.fields import FieldResponse, filter_mapping
from turnstile.http.request import Request
from turnstile.http.response import JSON_CONTENT_TYPE, Response
from turnstile.ratelimit.registry import Denied, RateLimitRegistry
from turnstile.routing.route import Matched, MethodMismatch, NoMatch, Route
from turnstile.routing.router import RouteTable
from turnstile.server.negotiation import negotiate

logger = logging.getLogger("turnstile.dispatch")

FIELDS_RESOLVED_HEADER = "X-Fields-Resolved"


def retry_after_seconds(retry_after_ms: int) -> int:
    """Whole seconds for a ``Retry-After`` header, rounded up."""
    return max(1, math.ceil(retry_after_ms / 1000))


def _status_response(status: int, message: str) -> Response:
    return Response.plain(message, status)


class Dispatcher:
    """Turns a routed request into a response.

    Pipeline per request:

    1. ``OPTIONS`` preflight short-circuit (202) when enabled
    2. Route resolution: 404 / 405 with ``Allow``
    3. Rate limiting: 429 with ``Retry-After`` when announced
    4. Access gate: 401 / 403 from the authentication handler
    5. Handler invocation: ``handler(request, *path_args)``
    6. Return value conversion (field routes filter their payload)
    """

    __slots__ = (
        "announce_retry_after",
        "auth_handler",
        "default_content_type",
        "filter_preflight",
        "rate_limits",
        "routes",
    )

    def __init__(
        self,
        routes: RouteTable,
        rate_limits: RateLimitRegistry | None = None,
        auth_handler: AuthenticationHandler | None = None,
        *,
        announce_retry_after: bool = True,
        default_content_type: str = JSON_CONTENT_TYPE,
        filter_preflight: bool = True,
    ) -> None:
        self.routes = routes
        self.rate_limits = rate_limits
        self.auth_handler = auth_handler
        self.announce_retry_after = announce_retry_after
        self.default_content_type = default_content_type
        self.filter_preflight = filter_preflight

    async def dispatch(self, request: Request) -> Response:
        response = await self._dispatch(request)
        if response.content_type is None:
            response = response.with_content_type(self.default_content_type)
        return response

    async def _dispatch(self, request: Request) -> Response:
        is_preflight = request.method == "OPTIONS"
        if is_preflight and self.filter_preflight:
            return Response(status=202)

        resolution = self.routes.resolve(request.method, request.path)
        match resolution:
            case NoMatch():
                logger.debug("404 %s %s", request.method, request.path)
                return _status_response(404, "Not Found")
            case MethodMismatch():
                logger.debug("405 %s %s (allowed: %s)", request.method, request.path, resolution.allow_header)
                return _status_response(405, "Method Not Allowed").with_header(
                    "Allow", resolution.allow_header
                )
            case Matched():
                pass

        route = resolution.route

        if self.rate_limits is not None and not is_preflight:
            admission = self.rate_limits.check(request.caller, request.path)
            if isinstance(admission, Denied):
                return self._too_many_requests(admission)

        request = request.with_match(resolution.args, resolution.named())

        try:
            gate = await self._authorize(route, request)
            if isinstance(gate, Response):
                return gate
            request = gate
            result = await invoke(route.handler, request, *request.path_args)
            if route.fields is not None:
                return self._field_response(route, request, result)
            return negotiate(result)
        except HTTPError as exc:
            logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)
            response = _status_response(exc.status, exc.detail or f"Error {exc.status}")
            for name, value in exc.headers:
                response = response.with_header(name, value)
            return response
        except Exception:
            logger.exception(
                "500 %s %s: handler %s for %s %s failed",
                request.method,
                request.path,
                route.handler_name,
                route.method.value,
                route.template,
            )
            return _status_response(500, "Internal Server Error")

    # -- Steps --

    def _too_many_requests(self, denied: Denied) -> Response:
        response = _status_response(429, "Rate limit exceeded")
        if self.announce_retry_after:
            response = response.with_header(
                "Retry-After", str(retry_after_seconds(denied.retry_after_ms))
            )
        return response

    async def _authorize(self, route: Route, request: Request) -> Request | Response:
        """Return the request (with ``auth`` attached) or a denial response."""
        level = route.access_level
        if level is AccessLevel.DISABLED:
            return _status_response(401, "Unauthorized")
        if not level.requires_authentication:
            return request

        handler = self.auth_handler
        if handler is None:
            logger.error(
                "%s %s requires %s access but no authentication handler is set",
                route.method.value,
                route.template,
                level.value,
            )
            return _status_response(401, "Unauthorized")

        answer: AuthenticationAnswer | None = await invoke(
            handler.has_general_access, request, level
        )
        if answer is None:
            logger.error(
                "Authentication handler %r returned no answer for %s %s",
                handler,
                route.method.value,
                route.template,
            )
            return _status_response(401, "Unauthorized")
        if not answer.has_access:
            return _status_response(answer.status, answer.message or "Unauthorized")
        return request.with_auth(answer)

    def _field_response(self, route: Route, request: Request, result: Any) -> Response:
        spec = route.fields
        assert spec is not None
        requested = spec.requested(request.headers.get(spec.header_name))

        match result:
            case Response():
                return result
            case FieldResponse():
                payload = result.build(
                    spec.resolve(requested),
                    (*spec.required, *result.required_names),
                )
            case Mapping():
                payload = filter_mapping(result, spec, requested)
            case str():
                return Response(body=result, content_type=JSON_CONTENT_TYPE)
            case _:
                logger.error(
                    "Field route %s %s returned %s; expected FieldResponse, dict or str",
                    route.method.value,
                    route.template,
                    type(result).__name__,
                )
                return _status_response(
                    500,
                    f"Field route returned unsupported type {type(result).__name__}",
                )

        return Response.json(payload).with_header(FIELDS_RESOLVED_HEADER, ",".join(payload))
