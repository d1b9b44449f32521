"""Caller identity for rate limiting.

The first hop of ``X-Forwarded-For`` wins when present, otherwise the
socket peer address. Requests with neither share the ``"unknown"`` key.
"""

from turnstile.http.headers import Headers

DEFAULT_FORWARDED_HEADER = "X-Forwarded-For"
UNKNOWN_CALLER = "unknown"


def caller_key(
    headers: Headers,
    client: tuple[str, int] | None,
    header_name: str | None = DEFAULT_FORWARDED_HEADER,
) -> str:
    """Derive the caller key for a request.

    ``header_name=None`` ignores forwarding headers entirely, for
    deployments that are not behind a trusted proxy.
    """
    if header_name:
        forwarded = headers.get(header_name)
        if forwarded:
            first = forwarded.split(",", 1)[0].strip()
            if first:
                return first
    if client:
        return client[0]
    return UNKNOWN_CALLER
