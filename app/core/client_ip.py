"""Client identity helpers used to derive rate limit keys.

A missing address is not an error: those clients fall back to the shared
``"unknown"`` bucket.
"""

from __future__ import annotations

from typing import Callable

from starlette.requests import Request

UNKNOWN_CLIENT = "unknown"

KeyGenerator = Callable[[Request], str]


def get_client_ip(request: Request) -> str:
    """Resolve the caller's IP address.

    Order: first hop of ``X-Forwarded-For``, then the socket peer address,
    then ``"unknown"``.

    Examples:
        >>> # X-Forwarded-For: "203.0.113.7, 10.0.0.1"  ->  "203.0.113.7"
    """

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


def client_ip_key(request: Request) -> str:
    """Default key: the client IP alone."""
    return get_client_ip(request)


def ip_path_key(request: Request) -> str:
    """Key per client and route path, so each endpoint has its own pool."""
    return f"{get_client_ip(request)}:{request.url.path}"


def purpose_key(purpose: str) -> KeyGenerator:
    """Build a key generator namespaced by a fixed purpose string.

    Args:
        purpose: Prefix such as ``"auth"`` or ``"upload"``.

    Returns:
        Callable producing ``"{purpose}:{ip}"`` for a request.
    """

    def _key(request: Request) -> str:
        return f"{purpose}:{get_client_ip(request)}"

    _key.__name__ = f"{purpose}_key"
    return _key
