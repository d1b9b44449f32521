"""Immutable HTTP request.

Metadata is frozen at creation; the body is read asynchronously and
cached. Routing results and the authentication object are attached by
returning a new request, never by mutation.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from turnstile._internal.asgi import Receive, Scope
from turnstile.http.client_ip import DEFAULT_FORWARDED_HEADER, caller_key
from turnstile.http.headers import Headers
from turnstile.http.query import QueryParams


async def _empty_receive() -> dict[str, Any]:
    return {"type": "http.request", "body": b"", "more_body": False}


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    ``caller`` is the rate-limit identity (first ``X-Forwarded-For`` hop
    or the peer address). ``path_args`` holds the captured path
    variables in template order once the request has been routed, and
    ``auth`` the object returned by a successful authentication check.
    """

    method: str
    path: str
    headers: Headers = field(default_factory=Headers)
    query: QueryParams = field(default_factory=QueryParams)
    http_version: str = "1.1"
    server: tuple[str, int] | None = None
    client: tuple[str, int] | None = None
    caller: str = "unknown"
    path_args: tuple[str, ...] = ()
    path_params: Mapping[str, str] = field(default_factory=dict)
    auth: Any = None

    # ASGI receive callable for body streaming
    _receive: Receive = field(default=_empty_receive, repr=False, compare=False)

    # Body cache; the dict is shared between copies made by with_*()
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def url(self) -> str:
        """Path plus query string."""
        qs = self.query.raw
        if qs:
            return f"{self.path}?{qs.decode('latin-1')}"
        return self.path

    # -- Derived copies --

    def with_match(self, args: tuple[str, ...], params: Mapping[str, str]) -> Request:
        return replace(self, path_args=args, path_params=dict(params))

    def with_auth(self, obj: Any) -> Request:
        return replace(self, auth=obj)

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body. Consumes ``receive`` once."""
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks = [chunk async for chunk in self.stream()]
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        while True:
            message = await self._receive()
            body = message.get("body", b"")
            if body:
                yield body
            if not message.get("more_body", False):
                break

    async def json(self) -> Any:
        return json.loads(await self.body())

    async def text(self) -> str:
        return (await self.body()).decode("utf-8")

    # -- Factory --

    @classmethod
    def from_asgi(
        cls,
        scope: Scope,
        receive: Receive,
        *,
        forwarded_header: str | None = DEFAULT_FORWARDED_HEADER,
    ) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        headers = Headers(tuple(scope.get("headers", ())))
        server = scope.get("server")
        client = scope.get("client")
        client = tuple(client) if client else None
        return cls(
            method=scope["method"].upper(),
            path=scope["path"],
            headers=headers,
            query=QueryParams(scope.get("query_string", b"")),
            http_version=scope.get("http_version", "1.1"),
            server=tuple(server) if server else None,
            client=client,
            caller=caller_key(headers, client, forwarded_header),
            _receive=receive,
        )
