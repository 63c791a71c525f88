"""
Redis Rate Limiter for Recommendation Generation

Generation calls an expensive external analyzer, so each project gets a
fixed window budget (default 10 calls per hour).

Key Pattern:
    ratelimit:generate:{project_id} - counter, expires with the window

Provides graceful degradation when Redis is unavailable: the request is
allowed and a warning is logged instead of failing generation.

Usage:
    limiter = await get_rate_limiter()
    await limiter.check("generate", project_id)  # raises RateLimitError
"""

import logging
import math
from typing import Optional

import redis.asyncio as redis

from profile_engine.config import get_settings
from profile_engine.errors import RateLimitError
from profile_engine.middleware.metrics import record_rate_limited

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window request counter in Redis.

    Attributes:
        redis: Async Redis client (created lazily)
        limit: Requests allowed per window
        window_seconds: Window length
    """

    def __init__(self, redis_url: str, limit: int = 10, window_seconds: int = 3600):
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = None
        self.limit = limit
        self.window_seconds = window_seconds

    async def _ensure_connected(self) -> Optional[redis.Redis]:
        """Ensure Redis connection is established."""
        if self.redis is None:
            try:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
            except Exception as e:
                logger.warning(f"Failed to connect to Redis: {e}")
                return None
        return self.redis

    async def hit(self, action: str, key: str) -> Optional[int]:
        """
        Count one request.

        Returns:
            Requests in the current window including this one, or None when
            Redis is unavailable
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return None

            redis_key = f"ratelimit:{action}:{key}"
            count = await client.incr(redis_key)
            if count == 1:
                await client.expire(redis_key, self.window_seconds)
            return count

        except Exception as e:
            logger.warning(f"Redis rate limit error ({action}): {e}")
            return None

    async def check(self, action: str, key: str) -> None:
        """
        Count a request and reject it when over the limit.

        Raises:
            RateLimitError: limit exceeded for this window
        """
        count = await self.hit(action, key)
        if count is None or count <= self.limit:
            return

        record_rate_limited()
        minutes = await self._minutes_remaining(f"ratelimit:{action}:{key}")
        raise RateLimitError(f"Rate limit exceeded. Please try again in {minutes} minutes.")

    async def _minutes_remaining(self, redis_key: str) -> int:
        try:
            ttl = await self.redis.ttl(redis_key) if self.redis else -1
        except Exception as e:
            logger.warning(f"Redis ttl error: {e}")
            ttl = -1
        seconds = ttl if ttl and ttl > 0 else self.window_seconds
        return max(1, math.ceil(seconds / 60))

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.close()
            self.redis = None


# ==================== Factory Function ====================

_limiter_instance: Optional[RateLimiter] = None


async def get_rate_limiter() -> RateLimiter:
    """
    Get or create the generation rate limiter singleton.

    Returns:
        RateLimiter configured from settings
    """
    global _limiter_instance

    if _limiter_instance is None:
        settings = get_settings()
        _limiter_instance = RateLimiter(
            redis_url=settings.redis_url,
            limit=settings.generate_rate_limit,
            window_seconds=settings.generate_rate_window_seconds,
        )

    return _limiter_instance


async def close_rate_limiter() -> None:
    """Close the singleton's Redis connection, if one was opened."""
    global _limiter_instance

    if _limiter_instance is not None:
        await _limiter_instance.close()
        _limiter_instance = None
