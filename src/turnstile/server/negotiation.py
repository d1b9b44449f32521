"""Content negotiation — maps handler return values to Response objects.

isinstance-based dispatch, no magic, fully predictable.
"""

import json
from collections.abc import Mapping
from typing import Any

from turnstile.errors import ConfigurationError
from turnstile.http.response import JSON_CONTENT_TYPE, Response

OCTET_STREAM = "application/octet-stream"


def negotiate(value: Any) -> Response:
    """Convert a route handler's return value to a Response.

    Dispatch order:

    1. ``Response``            -> pass through
    2. ``None``                -> 200, empty body
    3. ``str``                 -> 200, body as-is, content type left unset
    4. ``bytes``               -> 200, application/octet-stream
    5. ``dict`` / ``list``     -> 200, application/json
    6. ``(value, int)``        -> negotiate value, override status
    7. ``(value, int, dict)``  -> negotiate value, override status + headers

    An unset content type is filled in by the dispatcher from
    ``AppConfig.default_content_type``.
    """
    match value:
        case Response():
            return value
        case None:
            return Response()
        case str():
            return Response(body=value)
        case bytes():
            return Response(body=value, content_type=OCTET_STREAM)
        case dict() | list():
            return Response(body=json.dumps(value, default=str), content_type=JSON_CONTENT_TYPE)
        case (inner, int() as status):
            return negotiate(inner).with_status(status)
        case (inner, int() as status, Mapping() as headers):
            return negotiate(inner).with_status(status).with_headers(headers)
        case _:
            msg = (
                f"Cannot convert {type(value).__name__} to a response. "
                "Return a Response, str, bytes, dict, list, None, or a "
                "(value, status[, headers]) tuple."
            )
            raise ConfigurationError(msg)
