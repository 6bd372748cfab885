# tests/test_rate_limit.py
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from redis.exceptions import ConnectionError as RedisConnectionError

from app.features.waitlist.services.repository import WaitlistRepository
from app.platform.services.rate_limiter import (
    RateLimiter,
    RateLimitPolicy,
    RedisCounterStore,
    rate_limit_headers,
)
from app.platform.utils.rate_limit import MemoryCounterStore
from conftest import client_for


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.mark.asyncio
async def test_memory_limiter_blocks_after_limit():
    clock = FakeClock()
    limiter = RateLimiter(MemoryCounterStore(), clock=clock)
    policy = RateLimitPolicy.EMAIL_SUBMISSION

    results = [await limiter.check("1.2.3.4", policy) for _ in range(policy.limit + 1)]

    assert [r.success for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert all(r.limit == 3 for r in results)
    assert results[-1].reset_at.timestamp() == clock.now + policy.window_seconds


@pytest.mark.asyncio
async def test_memory_limiter_window_slides():
    clock = FakeClock()
    limiter = RateLimiter(MemoryCounterStore(), clock=clock)
    policy = RateLimitPolicy.EMAIL_SUBMISSION

    for _ in range(policy.limit):
        await limiter.check("1.2.3.4", policy)
    assert (await limiter.check("1.2.3.4", policy)).success is False

    clock.advance(policy.window_seconds + 1)
    assert (await limiter.check("1.2.3.4", policy)).success is True


@pytest.mark.asyncio
async def test_memory_limiter_keys_are_independent():
    limiter = RateLimiter(MemoryCounterStore(), clock=FakeClock())

    for _ in range(3):
        await limiter.check("1.1.1.1", RateLimitPolicy.EMAIL_SUBMISSION)

    assert (await limiter.check("2.2.2.2", RateLimitPolicy.EMAIL_SUBMISSION)).success is True
    assert (await limiter.check("1.1.1.1", RateLimitPolicy.GENERAL_API)).success is True


def test_memory_store_sweeps_expired_keys():
    store = MemoryCounterStore(sweep_interval=60)
    now = 1_000.0
    store.hit_sync("a", 3, 10, now)
    store.hit_sync("b", 3, 1_000, now)
    assert len(store) == 2

    store.hit_sync("c", 3, 10, now + 120)

    # "a" expired and got swept; "b" is still inside its window
    assert len(store) == 2
    assert "a" not in store._requests


@pytest.mark.asyncio
async def test_limiter_falls_back_to_memory_when_redis_fails():
    store = MagicMock(spec=RedisCounterStore)
    store.hit = AsyncMock(side_effect=RedisConnectionError("refused"))
    limiter = RateLimiter(store, fallback=MemoryCounterStore(), clock=FakeClock())

    result = await limiter.check("1.2.3.4", RateLimitPolicy.GENERAL_API)

    assert result.success is True
    assert result.remaining == 29
    store.hit.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_store_rejects_over_limit_and_releases_slot():
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[0, 1, 4, [(b"m", 100.0)], True])
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    redis = MagicMock()
    redis.pipeline.return_value = pipe
    redis.zrem = AsyncMock()

    state = await RedisCounterStore(redis).hit("waitlist:email:1.2.3.4", 3, 900, 150.0)

    assert state.allowed is False
    assert state.count == 3
    assert state.oldest == 100.0
    redis.zrem.assert_awaited_once()


def test_rate_limit_headers():
    from datetime import datetime, timezone
    from app.platform.services.rate_limiter import RateLimitResult

    result = RateLimitResult(
        success=True,
        limit=3,
        remaining=2,
        reset_at=datetime.fromtimestamp(1_700_000_900.4, tz=timezone.utc),
    )

    assert rate_limit_headers(result) == {
        "X-RateLimit-Limit": "3",
        "X-RateLimit-Remaining": "2",
        "X-RateLimit-Reset": "1700000901",
    }


@pytest.mark.asyncio
async def test_waitlist_submission_rate_limit(client):
    limit = RateLimitPolicy.EMAIL_SUBMISSION.limit

    # Requests under limit should succeed
    for i in range(limit):
        res = await client.post("/api/waitlist", json={"email": f"user{i}@example.com"})
        assert res.status_code == 201
        assert res.headers["X-RateLimit-Limit"] == str(limit)
        assert res.headers["X-RateLimit-Remaining"] == str(limit - i - 1)

    # Next request should be blocked
    res = await client.post("/api/waitlist", json={"email": "overflow@example.com"})
    assert res.status_code == 429
    assert res.json()["error"] == "Too many requests. Please try again later."
    assert int(res.headers["Retry-After"]) > 0
    assert res.headers["X-RateLimit-Remaining"] == "0"

    # Another client is unaffected
    res = await client.post(
        "/api/waitlist",
        json={"email": "other@example.com"},
        headers={"x-forwarded-for": "203.0.113.9"},
    )
    assert res.status_code == 201


@pytest.mark.asyncio
async def test_rate_limit_resets_after_window(app):
    clock = FakeClock()
    app.state.rate_limiter = RateLimiter(MemoryCounterStore(), clock=clock)

    async with client_for(app) as ac:
        for i in range(3):
            await ac.post("/api/waitlist", json={"email": f"user{i}@example.com"})
        assert (await ac.post("/api/waitlist", json={"email": "late@example.com"})).status_code == 429

        clock.advance(RateLimitPolicy.EMAIL_SUBMISSION.window_seconds + 1)
        assert (await ac.post("/api/waitlist", json={"email": "late@example.com"})).status_code == 201


@pytest.mark.asyncio
async def test_waitlist_stats_rate_limit(client):
    limit = RateLimitPolicy.GENERAL_API.limit

    # Requests within limit are OK
    for _ in range(limit):
        res = await client.get("/api/waitlist/stats")
        assert res.status_code == 200

    # Next request should be blocked
    res = await client.get("/api/waitlist/stats")
    assert res.status_code == 429


@pytest.mark.asyncio
async def test_debug_bypass_uses_relaxed_policy(build_app):
    app = build_app(ALLOW_DEBUG_BYPASS=True)
    async with client_for(app, **{"x-debug-bypass": "true"}) as ac:
        for i in range(5):
            res = await ac.post("/api/waitlist", json={"email": f"user{i}@example.com"})
            assert res.status_code == 201
            assert res.headers["X-RateLimit-Limit"] == str(RateLimitPolicy.DEBUG_BYPASS.limit)


@pytest.mark.asyncio
async def test_unlimited_routes_have_no_rate_limit_headers(client):
    res = await client.get("/health")
    assert "X-RateLimit-Limit" not in res.headers


@pytest.mark.asyncio
async def test_unexpected_error_still_carries_rate_limit_headers(client):
    failing = AsyncMock(side_effect=RuntimeError("unexpected"))
    with patch.object(WaitlistRepository, "stats_base", failing):
        res = await client.get("/api/waitlist/stats")

    assert res.status_code == 500
    assert res.json() == {
        "success": False,
        "message": "Something went wrong. Please try again later.",
        "error": "Internal server error",
    }
    assert res.headers["X-RateLimit-Limit"] == str(RateLimitPolicy.GENERAL_API.limit)
    assert res.headers["X-RateLimit-Remaining"] == str(RateLimitPolicy.GENERAL_API.limit - 1)
