"""ASGI response sending — translates a Response into ASGI messages."""

from turnstile._internal.asgi import Send
from turnstile.http.response import TEXT_CONTENT_TYPE, Response


def _body_allowed(status: int) -> bool:
    # 1xx, 204 and 304 responses carry no body
    return not (100 <= status < 200 or status in {204, 304})


async def send_response(response: Response, send: Send) -> None:
    """Send ``response`` as one start message and one body message."""
    content_type = response.content_type or TEXT_CONTENT_TYPE
    raw_headers: list[tuple[bytes, bytes]] = [
        (b"content-type", content_type.encode("latin-1")),
    ]
    for name, value in response.headers:
        raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))

    body = response.body_bytes if _body_allowed(response.status) else b""
    raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": raw_headers,
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": body,
        }
    )
