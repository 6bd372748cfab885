import math
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Protocol

from fastapi import Request
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.platform.cache.redis import create_redis
from app.platform.logger import get_logger
from app.platform.utils.rate_limit import MemoryCounterStore, WindowState

logger = get_logger("rate_limiter")


class RateLimitPolicy(Enum):
    EMAIL_SUBMISSION = ("waitlist:email", 3, 15 * 60)
    EMAIL_VERIFICATION = ("waitlist:verify", 10, 60 * 60)
    ADMIN_API = ("waitlist:admin", 100, 60)
    GENERAL_API = ("waitlist:api", 30, 60)
    DEBUG_BYPASS = ("waitlist:debug", 999, 60)

    def __init__(self, prefix: str, limit: int, window_seconds: int):
        self.prefix = prefix
        self.limit = limit
        self.window_seconds = window_seconds


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_at: datetime

    @property
    def retry_after(self) -> int:
        return max(0, math.ceil(self.reset_at.timestamp() - time.time()))


class CounterStore(Protocol):
    async def hit(self, key: str, limit: int, window: float, now: float) -> WindowState:
        ...


class RedisCounterStore:
    """Sliding log kept in a sorted set; trim/add/count/expire run as one MULTI."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def hit(self, key: str, limit: int, window: float, now: float) -> WindowState:
        member = f"{now:.6f}:{uuid.uuid4().hex}"
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, 0, now - window)
            pipe.zadd(key, {member: now})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.pexpire(key, int(window * 1000))
            _, _, count, oldest, _ = await pipe.execute()

        oldest_score = float(oldest[0][1]) if oldest else now
        if count > limit:
            # rejected requests do not consume a slot
            await self.redis.zrem(key, member)
            return WindowState(False, count - 1, oldest_score)
        return WindowState(True, count, oldest_score)


class RateLimiter:
    def __init__(
        self,
        store: CounterStore,
        fallback: Optional[MemoryCounterStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.fallback = fallback
        self.clock = clock

    @classmethod
    def from_settings(cls, settings) -> "RateLimiter":
        memory = MemoryCounterStore(sweep_interval=settings.RATE_LIMIT_SWEEP_SECONDS)
        redis = create_redis(settings.REDIS_URL)
        if redis is None:
            logger.warning(
                "REDIS_URL not set - using in-memory rate limiting "
                "(not suitable for multiple instances)"
            )
            return cls(memory)
        logger.info("Using Redis for rate limiting")
        return cls(RedisCounterStore(redis), fallback=memory)

    @property
    def is_durable(self) -> bool:
        return isinstance(self.store, RedisCounterStore)

    async def check(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        now = self.clock()
        key = f"{policy.prefix}:{identifier}"
        try:
            state = await self.store.hit(key, policy.limit, policy.window_seconds, now)
        except RedisError as e:
            if self.fallback is None:
                raise
            logger.warning(f"Redis rate limit store unavailable, using memory fallback: {e}")
            state = await self.fallback.hit(key, policy.limit, policy.window_seconds, now)

        return RateLimitResult(
            success=state.allowed,
            limit=policy.limit,
            remaining=max(0, policy.limit - state.count),
            reset_at=datetime.fromtimestamp(state.oldest + policy.window_seconds, tz=timezone.utc),
        )


def get_client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_at.timestamp())),
    }
