"""Fixed-window rate limiting for authentication endpoints, backed by Redis."""

from __future__ import annotations

from typing import Mapping, Optional, Protocol

import redis.asyncio as redis
import structlog

from taskhub.core.config import Settings
from taskhub.core.errors import RateLimitedError

log = structlog.get_logger()


class RateLimiter(Protocol):
    async def consume(self, action: str, identifier: str) -> None:
        """Count one attempt; raise RateLimitedError once the window is exhausted."""
        ...


class RedisRateLimiter:
    """One counter per (action, identifier) that expires with its window."""

    def __init__(self, client: redis.Redis, window_seconds: int, limits: Mapping[str, int]):
        self._redis = client
        self._window = window_seconds
        self._limits = dict(limits)

    @classmethod
    def from_settings(cls, client: redis.Redis, settings: Settings) -> "RedisRateLimiter":
        return cls(
            client,
            window_seconds=settings.auth_rate_limit_window_seconds,
            limits={
                "login": settings.auth_login_max_attempts,
                "register": settings.auth_register_max_attempts,
            },
        )

    async def consume(self, action: str, identifier: str) -> None:
        limit = self._limits.get(action)
        if limit is None:
            return
        key = f"rl:{action}:{identifier.lower()}"
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, self._window)
        if count > limit:
            log.warning("rate_limit.exceeded", action=action, identifier=identifier)
            raise RateLimitedError()


class NoopRateLimiter:
    """Used when rate limiting is disabled."""

    async def consume(self, action: str, identifier: str) -> None:
        return None


async def consume(limiter: Optional[RateLimiter], action: str, identifier: str) -> None:
    if limiter is not None:
        await limiter.consume(action, identifier)
