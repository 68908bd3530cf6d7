"""
Client address extraction behind proxies and load balancers.
"""
from typing import Optional

from fastapi import Request

# Checked in order; the first non-empty value wins
_FORWARDING_HEADERS = ("X-Forwarded-For", "X-Real-IP", "CF-Connecting-IP", "True-Client-IP")


def get_client_ip(request: Request) -> Optional[str]:
    """
    Best-effort client IP.

    X-Forwarded-For may hold "client, proxy1, proxy2"; the first entry is
    the client. These headers are client-controlled unless the proxy in
    front strips them, so the result is only used for analytics and
    rate-limit keys, never for authorization.
    """
    for header in _FORWARDING_HEADERS:
        value = request.headers.get(header)
        if value:
            candidate = value.split(",")[0].strip()
            if candidate:
                return candidate
    if request.client:
        return request.client.host
    return None
