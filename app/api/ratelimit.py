"""Rate limiting dependency for the progress write routes.

A dependency rather than a middleware so reads, /health and /metrics are
never throttled.  Buckets are keyed by client IP: user ids arrive in the
request body and are not authenticated here, so keying by them would let
a client pick its own bucket.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from app.core.metrics import RATE_LIMIT_HITS
from app.services.rate_limiter import RateLimitConfig, RateLimitResult

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = RateLimitConfig()


def require_rate_limit(config: RateLimitConfig = _DEFAULT_CONFIG):
    """Dependency factory: enforce a token bucket on a route.

    Usage: @router.post("", dependencies=[Depends(require_rate_limit())])
    """

    async def _check(request: Request) -> None:
        key = _build_key(request)
        result: RateLimitResult = await request.app.state.rate_limiter.check(
            key, config
        )

        if not result.allowed:
            RATE_LIMIT_HITS.labels(key_type="ip").inc()
            logger.warning("Rate limit exceeded key=%s", key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded",
                headers={
                    "Retry-After": str(int(result.retry_after) + 1),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check


def _build_key(request: Request) -> str:
    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"
