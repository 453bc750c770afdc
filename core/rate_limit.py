"""
Redis fixed-window rate limiting exposed as FastAPI dependencies.

Usage::

    @router.post("/login", dependencies=[Depends(rate_limit("auth"))])
"""
import logging
import time
from typing import Dict, Tuple

from fastapi import HTTPException, Request, Response, status
from redis.exceptions import RedisError

from core.config import settings
from core import redis as core_redis

logger = logging.getLogger(__name__)

# tier -> (requests, window seconds)
RATE_LIMITS: Dict[str, Tuple[int, int]] = {
    "api": (100, 15 * 60),
    "auth": (10, 15 * 60),
    "payment": (5, 60),
    "search": (30, 60),
    "admin": (50, 60),
}


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return "anonymous"


def check_rate_limit(identifier: str, tier: str = "api") -> Dict[str, int]:
    limit, window = RATE_LIMITS.get(tier, RATE_LIMITS["api"])
    now = int(time.time())
    window_start = now - (now % window)
    key = f"ratelimit:{tier}:{identifier}:{window_start}"
    reset = window_start + window

    try:
        count = core_redis.redis_client.incr(key)
        if count == 1:
            core_redis.redis_client.expire(key, window)
    except RedisError as e:
        logger.warning("Rate limit check failed for %s (%s): %s", identifier, tier, e)
        return {"allowed": True, "limit": limit, "remaining": limit, "reset": reset}

    return {
        "allowed": count <= limit,
        "limit": limit,
        "remaining": max(limit - count, 0),
        "reset": reset,
    }


def rate_limit(tier: str = "api"):
    """Build a dependency that enforces the given tier for the caller's IP."""

    def _dependency(request: Request, response: Response) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        result = check_rate_limit(client_identifier(request), tier)
        headers = {
            "X-RateLimit-Limit": str(result["limit"]),
            "X-RateLimit-Remaining": str(result["remaining"]),
            "X-RateLimit-Reset": str(result["reset"]),
        }
        if not result["allowed"]:
            headers["Retry-After"] = str(max(result["reset"] - int(time.time()), 1))
            logger.info("Rate limit exceeded tier=%s path=%s", tier, request.url.path)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later.",
                headers=headers,
            )
        response.headers.update(headers)

    return _dependency
