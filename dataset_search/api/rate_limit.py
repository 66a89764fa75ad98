"""
Per-client rate limiting for the API, backed by slowapi.

Limits are counted in slowapi's in-memory storage, so every worker
counts separately. Expired windows are dropped by the storage itself.
"""

import math
import time
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from ..config.search_config import RATE_LIMIT_CONFIG

logger = logging.getLogger("api")


def client_key(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def endpoint_limit() -> str:
    # Read per request so the limit can be changed without re-decorating routes
    return RATE_LIMIT_CONFIG["limit"]


limiter = Limiter(key_func=client_key, enabled=RATE_LIMIT_CONFIG["enabled"])


def retry_after_seconds(request: Request, exc: RateLimitExceeded) -> int:
    """Seconds until the client's current window resets."""
    current = getattr(request.state, "view_rate_limit", None)
    if current is None:
        return max(1, int(exc.limit.limit.get_expiry()))
    item, identifiers = current
    reset_at, _ = limiter.limiter.get_window_stats(item, *identifiers)
    return max(1, math.ceil(reset_at - time.time()))


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 in the API's error format with a Retry-After header."""
    retry_after = retry_after_seconds(request, exc)
    logger.warning(f"Rate limit exceeded for {client_key(request)} on {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests",
            "code": "RATE_LIMITED",
            "details": {"limit": str(exc.detail), "retry_after_seconds": retry_after},
        },
        headers={"Retry-After": str(retry_after)},
    )
