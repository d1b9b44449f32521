"""ASGI handler — translates ASGI scope/messages to turnstile types.

The only component that touches raw HTTP scopes directly. Converts the
scope to a Request, runs it through middleware and the dispatcher, and
sends the Response back through ASGI ``send``.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from turnstile._internal.asgi import Receive, Scope, Send
from turnstile.http.request import Request
from turnstile.http.response import Response
from turnstile.middleware.protocol import Next
from turnstile.server.sender import send_response

logger = logging.getLogger("turnstile.server")


def build_pipeline(
    dispatch: Callable[[Request], Awaitable[Response]],
    middleware: tuple[Callable[..., Any], ...],
) -> Next:
    """Wrap ``dispatch`` in middleware, first registered outermost."""
    handler: Next = dispatch
    for mw in reversed(middleware):

        async def make_next(req: Request, _mw: Any = mw, _next: Next = handler) -> Response:
            return await _mw(req, _next)

        handler = make_next
    return handler


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    pipeline: Next,
    forwarded_header: str | None,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    request = Request.from_asgi(scope, receive, forwarded_header=forwarded_header)
    try:
        response = await pipeline(request)
    except Exception:
        # The dispatcher never raises; this catches middleware faults.
        logger.exception("500 %s %s", request.method, request.path)
        response = Response.plain("Internal Server Error", 500)
    await send_response(response, send)
