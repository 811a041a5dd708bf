"""Request helpers for client identity and device metadata."""

from fastapi import Request

UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request) -> str:
    """Return the connecting network address as seen by the server.

    Forwarding headers (X-Forwarded-For, X-Real-IP) are not consulted: every
    client behind the same proxy or NAT shares one identity.
    """
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def get_device_info(request: Request) -> tuple[str, str]:
    """Return (user agent, origin address) for a new refresh token record.

    Empty values are filled in by the token store.
    """
    user_agent = request.headers.get("User-Agent", "")
    origin = request.client.host if request.client else ""
    return user_agent, origin
