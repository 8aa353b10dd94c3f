"""
Per-user fixed-window rate limiting backed by Redis.

Counters live under ``ratelimit:<scope>:<identifier>``. The first hit in a window
sets the expiry, so each window starts with the first request rather than on a
clock boundary.
"""
from dataclasses import dataclass

from reach.core.exceptions import RateLimitException
from reach.core.logging import get_logger
from reach.core.redis_client import get_redis

logger = get_logger(__name__)

_KEY_PREFIX = "ratelimit"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in_seconds: int


async def check_rate_limit(
    scope: str,
    identifier: str | int,
    limit: int,
    window_seconds: int,
) -> RateLimitResult:
    """Count one request against ``scope`` for ``identifier``."""
    redis = await get_redis()
    key = f"{_KEY_PREFIX}:{scope}:{identifier}"

    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, window_seconds)
        ttl = window_seconds
    else:
        ttl = await redis.ttl(key)
        if ttl is None or ttl < 0:
            # key lost its expiry (e.g. crash between INCR and EXPIRE)
            await redis.expire(key, window_seconds)
            ttl = window_seconds

    return RateLimitResult(
        allowed=count <= limit,
        remaining=max(limit - count, 0),
        reset_in_seconds=int(ttl),
    )


async def enforce_rate_limit(
    scope: str,
    identifier: str | int,
    limit: int,
    window_seconds: int,
) -> RateLimitResult:
    """Like check_rate_limit, but raises RateLimitException when exceeded."""
    result = await check_rate_limit(scope, identifier, limit, window_seconds)
    if not result.allowed:
        logger.warning(
            "Rate limit exceeded",
            extra_data={
                "scope": scope,
                "identifier": str(identifier),
                "limit": limit,
                "window_seconds": window_seconds,
            },
        )
        raise RateLimitException(retry_after_seconds=result.reset_in_seconds)
    return result


async def reset_rate_limit(scope: str, identifier: str | int) -> None:
    redis = await get_redis()
    await redis.delete(f"{_KEY_PREFIX}:{scope}:{identifier}")
