"""Middleware protocol and Next type alias.

A middleware is any callable matching::

    async def my_mw(request: Request, next: Next) -> Response: ...

No base class required. Middleware wraps the dispatcher, so it sees
every request, including the ones routing or rate limiting reject.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol, TypeAlias

from turnstile.http.request import Request
from turnstile.http.response import Response

# The next handler in the middleware chain
Next: TypeAlias = Callable[[Request], Awaitable[Response]]


class Middleware(Protocol):
    """Protocol for turnstile middleware.

    Accepts both functions and callable objects::

        async def cors(request: Request, next: Next) -> Response:
            response = await next(request)
            return response.with_header("Access-Control-Allow-Origin", "*")

        class Timing:
            async def __call__(self, request: Request, next: Next) -> Response:
                ...
    """

    async def __call__(self, request: Request, next: Next) -> Response: ...
