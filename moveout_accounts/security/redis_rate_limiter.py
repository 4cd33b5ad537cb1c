"""Redis-backed sliding window rate limiter."""

from __future__ import annotations

import time
import uuid

from redis import Redis


class RedisSlidingWindowRateLimiter:
    """Distributed sliding log limiter built on Redis sorted sets.

    Every attempt is logged in the key's sorted set first; an attempt that lands
    beyond the limit removes its own entry again so rejected calls do not
    extend the window.
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "moveout:rate",
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix

    def allow(self, key: str) -> bool:
        """Return ``True`` when the key is still within the distributed rate limit."""
        now_ms = int(time.time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        member = f"{now_ms}:{uuid.uuid4().hex}"
        with self._client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
            pipe.zadd(redis_key, {member: now_ms})
            pipe.zcard(redis_key)
            pipe.pexpire(redis_key, self._window_ms)
            _, _, count, _ = pipe.execute()
        if count <= self._max_requests:
            return True
        self._client.zrem(redis_key, member)
        return False
