"""
Per-client request rate limiting with slowapi.
Applied to the public share endpoints against token guessing.
"""
import logging
from typing import Callable, Union

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import get_settings
from app.utils.client_ip import get_client_ip
from app.utils.prometheus_metrics import (
    rate_limit_hits_total,
    rate_limit_requests_total,
)

logger = logging.getLogger("app.rate_limit")
settings = get_settings()


def get_client_identifier(request: Request) -> str:
    """Rate limit key: client IP, or "unknown"."""
    return get_client_ip(request) or "unknown"


limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"] if settings.rate_limit_enabled else [],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)


def setup_rate_limit_exception_handler(app) -> None:
    """Register the 429 handler (metrics + log, then slowapi's standard response)."""

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        client_id = get_client_identifier(request)
        endpoint = request.url.path

        # truncated client id keeps label cardinality bounded
        rate_limit_hits_total.labels(endpoint=endpoint, client_id=client_id[:16]).inc()
        rate_limit_requests_total.labels(endpoint=endpoint, status="blocked").inc()
        logger.warning(
            "Rate limit exceeded",
            extra={
                "event": "rate_limit",
                "client_id": client_id,
                "endpoint": endpoint,
                "limit": getattr(exc, "detail", "unknown"),
            },
        )
        return _rate_limit_exceeded_handler(request, exc)


def public_route_limit() -> str:
    """Per-IP limit for the public share and download routes, read per request."""
    return f"{settings.rate_limit_share_per_minute}/minute"


def get_rate_limit_decorator(limit: Union[str, Callable[[], str]]):
    """
    Rate limit decorator for a route, e.g. get_rate_limit_decorator("60/minute").
    The route needs a `request: Request` parameter. Checks are skipped while
    `limiter.enabled` is false (RATE_LIMIT_ENABLED).
    """
    return limiter.limit(limit)
