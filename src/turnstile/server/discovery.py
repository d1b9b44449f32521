"""Endpoint discovery: a JSON listing of every registered route."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from turnstile.http.request import Request
from turnstile.http.response import Response
from turnstile.routing.route import Route

if TYPE_CHECKING:
    from turnstile.app import App


def describe_routes(routes: tuple[Route, ...]) -> dict[str, dict[str, Any]]:
    """Map each template to its method, access level and description.

    A template registered for several verbs is listed once per verb,
    keyed as ``"METHOD template"``.
    """
    counts = Counter(route.template for route in routes)
    listing: dict[str, dict[str, Any]] = {}
    for route in routes:
        key = route.template if counts[route.template] == 1 else f"{route.method.value} {route.template}"
        listing[key] = {
            "method": route.method.value,
            "accessLevel": route.access_level.name,
            "description": route.description.strip() or None,
        }
    return listing


def discovery_handler(app: App) -> Callable[[Request], Response]:
    """Build the handler for ``AppConfig.discovery_path``."""

    def list_endpoints(request: Request) -> Response:
        if not app.discovery_enabled:
            return Response(status=503)
        return Response.json(describe_routes(app.routes.routes))

    return list_endpoints
