"""
Portal Request Throttling

Sliding window rate limiting for the unauthenticated portal actions
(magic-link issue/redeem and password login), keyed by hashed client IP.

Uses Redis sorted sets when REDIS_URL is configured so limits hold across
instances; otherwise counts are kept in process memory.
"""

import time
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import redis.asyncio as aioredis

from servicegrid_portal.config import settings
from servicegrid_portal.exceptions import RateLimitError
from servicegrid_portal.security.tokens import hash_client_ip

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


class RedisSlidingWindow:
    """
    Redis-backed sliding window using a sorted set per key.

    Each request is a member scored by its timestamp; members older than the
    window are trimmed before counting.
    """

    def __init__(self, redis_client, fail_closed: bool = False):
        self.redis = redis_client
        self.fail_closed = fail_closed

    async def hit(self, key: str, limit: int, window_seconds: int) -> Tuple[bool, int, int]:
        """
        Record a request and report whether it is within the limit.

        Returns:
            Tuple of (allowed, remaining, retry_after_seconds)
        """
        now = time.time()
        window_start = now - window_seconds

        try:
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zadd(key, {f"{now}:{time.monotonic_ns()}": now})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.expire(key, window_seconds)
            results = await pipe.execute()
        except Exception as e:
            logger.error(f"Redis rate limit error: {e}")
            if self.fail_closed:
                raise
            # Fail open when Redis is unreachable
            return True, limit, 0

        count = results[2]
        oldest = results[3][0][1] if results[3] else now
        allowed = count <= limit
        remaining = max(0, limit - count)
        retry_after = max(1, int(oldest + window_seconds - now))
        return allowed, remaining, retry_after


@dataclass
class SlidingWindow:
    """In-memory request timestamps for one key."""

    hits: list = field(default_factory=list)
    window_size_seconds: int = WINDOW_SECONDS


class MemorySlidingWindow:
    """Process-local sliding window. Accurate per instance only."""

    def __init__(self):
        self._windows: Dict[str, SlidingWindow] = defaultdict(SlidingWindow)

    async def hit(self, key: str, limit: int, window_seconds: int) -> Tuple[bool, int, int]:
        now = time.time()
        window = self._windows[key]
        window.window_size_seconds = window_seconds
        window.hits = [t for t in window.hits if t > now - window_seconds]

        if len(window.hits) >= limit:
            retry_after = max(1, int(window.hits[0] + window_seconds - now))
            return False, 0, retry_after

        window.hits.append(now)
        return True, limit - len(window.hits), 0

    def clear(self) -> None:
        self._windows.clear()


class PortalRateLimiter:
    """Per-IP throttle for unauthenticated portal actions."""

    def __init__(
        self,
        requests_per_minute: int = 20,
        redis_client=None,
    ):
        self.requests_per_minute = requests_per_minute
        self.redis_client = redis_client
        self._memory = MemorySlidingWindow()
        self._backend = RedisSlidingWindow(redis_client) if redis_client is not None else self._memory

    @property
    def backend_name(self) -> str:
        return "redis" if self.redis_client is not None else "memory"

    async def check(self, client_ip: str, action: str) -> int:
        """
        Count one request for (ip, action).

        Returns:
            Remaining requests in the current window.

        Raises:
            RateLimitError (429) when the limit is exceeded.
        """
        key = f"portal-ratelimit:{action}:{hash_client_ip(client_ip)}"
        allowed, remaining, retry_after = await self._backend.hit(
            key, self.requests_per_minute, WINDOW_SECONDS
        )
        if not allowed:
            logger.warning(
                "Portal rate limit exceeded",
                extra={"action": action, "limit": self.requests_per_minute},
            )
            raise RateLimitError(retry_after=retry_after)
        return remaining

    def reset(self) -> None:
        """Clear in-memory windows (Redis keys expire on their own)."""
        self._memory.clear()


# Global rate limiter instance
_rate_limiter: Optional[PortalRateLimiter] = None


def _get_redis_client():
    """Create an async Redis client when REDIS_URL is configured."""
    if not settings.REDIS_URL:
        return None
    try:
        client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        logger.info("Redis portal rate limiting enabled")
        return client
    except Exception as e:
        logger.warning(f"Failed to configure Redis for rate limiting: {e}. Falling back to in-memory.")
        return None


def get_rate_limiter() -> PortalRateLimiter:
    """Get or create the global portal rate limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = PortalRateLimiter(
            requests_per_minute=settings.PORTAL_RATE_LIMIT_PER_MINUTE,
            redis_client=_get_redis_client(),
        )
    return _rate_limiter


def reset_rate_limits() -> None:
    """Drop all in-memory rate limit state."""
    if _rate_limiter is not None:
        _rate_limiter.reset()
