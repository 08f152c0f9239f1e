from __future__ import annotations

import hashlib
import time

from fastapi import Request
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from gatherhub.core.config import settings
from gatherhub.core.redis import get_redis

CHECKOUT_PATH_SUFFIXES = ("/checkout", "/verify-payment")


def _parse_rate(rate: str) -> tuple[int, int]:
    """
    Parse formats like:
      - "60/minute"
      - "120/hour"
      - "10/second"
    Returns: (limit, window_seconds)
    """
    raw = rate.strip().lower()
    if "/" not in raw:
        raise ValueError(f"Invalid rate format: {rate}")

    limit_str, window_str = raw.split("/", 1)
    limit = int(limit_str)

    window_str = window_str.strip()
    if window_str in {"sec", "second", "seconds"}:
        return limit, 1
    if window_str in {"min", "minute", "minutes"}:
        return limit, 60
    if window_str in {"hour", "hours"}:
        return limit, 3600
    if window_str in {"day", "days"}:
        return limit, 86400

    raise ValueError(f"Invalid rate window: {window_str}")


def _client_identity(request: Request) -> str:
    # Authenticated callers are bucketed per session token, everyone else per IP
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer ") and len(auth) > len("Bearer "):
        digest = hashlib.sha256(auth.removeprefix("Bearer ").encode("utf-8")).hexdigest()[:16]
        return f"tok:{digest}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def _bucket_for(request: Request) -> tuple[str, str]:
    path = request.url.path.rstrip("/")
    if request.method == "POST" and path.endswith(CHECKOUT_PATH_SUFFIXES):
        return "checkout", settings.rate_limit_checkout
    return "default", settings.rate_limit_default


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if not settings.rate_limit_enabled:
            return await call_next(request)

        # Don't rate-limit CORS preflight
        if request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path
        if path in set(settings.rate_limit_exempt_paths) or path.startswith("/v1/webhooks/"):
            return await call_next(request)

        bucket_name, rate = _bucket_for(request)
        try:
            limit, window_seconds = _parse_rate(rate)
        except ValueError:
            # Misconfigured rate => fail open
            return await call_next(request)

        now = int(time.time())
        window = now // window_seconds
        key = f"rl:{bucket_name}:{_client_identity(request)}:{window_seconds}:{window}"

        try:
            r = get_redis()
            count = r.incr(key)
            if count == 1:
                r.expire(key, window_seconds)
        except RedisError:
            # Fail open if Redis is unavailable
            return await call_next(request)

        remaining = max(0, limit - int(count))
        reset = (window + 1) * window_seconds

        if count > limit:
            headers = {
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(reset),
                "Retry-After": str(max(0, reset - now)),
            }
            return JSONResponse(
                status_code=429,
                content={"detail": {"code": "RATE_LIMITED", "message": "rate limit exceeded"}},
                headers=headers,
            )

        response = await call_next(request)
        response.headers.setdefault("X-RateLimit-Limit", str(limit))
        response.headers.setdefault("X-RateLimit-Remaining", str(remaining))
        response.headers.setdefault("X-RateLimit-Reset", str(reset))
        return response
