"""HTTP primitives: Request, Response, Headers, QueryParams."""

from turnstile.http.client_ip import caller_key
from turnstile.http.headers import Headers
from turnstile.http.query import QueryParams
from turnstile.http.request import Request
from turnstile.http.response import Response

__all__ = ["Headers", "QueryParams", "Request", "Response", "caller_key"]
