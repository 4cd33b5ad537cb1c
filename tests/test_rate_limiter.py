"""Tests for the in-memory and Redis-backed sliding window rate limiters."""

from __future__ import annotations

import fakeredis
import pytest

from moveout_accounts.security.rate_limiter import SlidingWindowRateLimiter
from moveout_accounts.security.redis_rate_limiter import RedisSlidingWindowRateLimiter


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


def test_memory_limiter_window_slides():
    now = [0.0]
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=30, clock=lambda: now[0])

    assert limiter.allow("activation:alice")
    assert limiter.allow("activation:alice")
    assert not limiter.allow("activation:alice")
    assert limiter.allow("activation:bob")

    now[0] = 30.0
    assert limiter.allow("activation:alice")


def test_redis_limiter_blocks_excess_per_key(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=2, window_seconds=60, key_prefix="test"
    )

    assert limiter.allow("delete:alice")
    assert limiter.allow("delete:alice")
    assert not limiter.allow("delete:alice")
    assert not limiter.allow("delete:alice")
    assert limiter.allow("delete:bob")


def test_redis_limiter_does_not_count_rejected_attempts(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_seconds=60, key_prefix="test"
    )

    assert limiter.allow("create:alice")
    assert not limiter.allow("create:alice")
    assert redis_client.zcard("test:create:alice") == 1
