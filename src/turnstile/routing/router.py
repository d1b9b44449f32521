"""Route table with specificity ordering.

Routes are kept in a tuple sorted by specificity: fewer captures first,
then more segments, then template text. Adding a route builds a new
sorted tuple and swaps it in, so ``resolve`` reads without locking and
routes may be added while requests are being served.
"""

import logging
import threading
from collections.abc import Iterator

from turnstile.routing.pattern import normalize_path
from turnstile.routing.route import NO_MATCH, Matched, MethodMismatch, Resolution, Route

logger = logging.getLogger("turnstile.routing")


def specificity_key(route: Route) -> tuple[int, int, str]:
    return route.pattern.specificity()


class RouteTable:
    """Specificity-ordered route table.

    Usage::

        table = RouteTable()
        table.add(Route("/users/{id}", RequestMethod.GET, handler))
        table.add(Route("/users/me", RequestMethod.GET, handler))
        table.resolve("GET", "/users/me")   # Matched(/users/me)
        table.resolve("GET", "/users/42")   # Matched(/users/{id}, args=("42",))
        table.resolve("POST", "/users/42")  # MethodMismatch(allowed={"GET"})
        table.resolve("GET", "/nothing")    # NoMatch()
    """

    __slots__ = ("_routes", "_write_lock")

    def __init__(self) -> None:
        self._routes: tuple[Route, ...] = ()
        self._write_lock = threading.Lock()

    def add(self, route: Route) -> None:
        """Insert a route and re-sort. Safe while ``resolve`` runs."""
        with self._write_lock:
            # sorted() is stable: duplicates keep registration order
            self._routes = tuple(sorted((*self._routes, route), key=specificity_key))
        logger.debug("Registered %s %s -> %s", route.method.value, route.template, route.handler_name)

    @property
    def routes(self) -> tuple[Route, ...]:
        """All routes in the order ``resolve`` tries them."""
        return self._routes

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def resolve(self, method: str, path: str) -> Resolution:
        """Resolve a request to a route and its captured path variables.

        The first structural match whose method accepts ``method`` wins.
        When the path matches only routes for other verbs the result is
        ``MethodMismatch`` so callers can answer 405 instead of 404.
        """
        normalized = normalize_path(path)
        routes = self._routes
        mismatched: set[str] = set()

        for route in routes:
            args = route.pattern.match(normalized)
            if args is None:
                continue
            if route.method.accepts(method):
                return Matched(route=route, args=args)
            mismatched.add(route.method.value)

        if mismatched:
            return MethodMismatch(allowed=frozenset(mismatched))
        return NO_MATCH
