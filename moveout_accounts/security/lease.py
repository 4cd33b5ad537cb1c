"""Run leases that keep inactivity sweeps from overlapping."""

from __future__ import annotations

import time
import uuid
from threading import Lock
from typing import Protocol

from redis import Redis
from redis.exceptions import WatchError


class SweepLease(Protocol):
    def acquire(self, ttl_seconds: float) -> str | None: ...

    def release(self, token: str) -> bool: ...


class InMemoryLease:
    """Process-local lease with expiry."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._token: str | None = None
        self._expires_at = 0.0

    def acquire(self, ttl_seconds: float) -> str | None:
        """Return a fresh run token, or ``None`` while another run holds the lease."""
        now = time.monotonic()
        with self._lock:
            if self._token is not None and now < self._expires_at:
                return None
            self._token = uuid.uuid4().hex
            self._expires_at = now + ttl_seconds
            return self._token

    def release(self, token: str) -> bool:
        with self._lock:
            if self._token != token:
                return False
            self._token = None
            self._expires_at = 0.0
            return True


class RedisLease:
    """Distributed lease stored as a single Redis key with a millisecond TTL."""

    def __init__(self, client: Redis, *, key: str = "lease:inactivity-sweep") -> None:
        self._client = client
        self._key = key

    def acquire(self, ttl_seconds: float) -> str | None:
        token = uuid.uuid4().hex
        acquired = self._client.set(self._key, token, nx=True, px=max(1, int(ttl_seconds * 1000)))
        return token if acquired else None

    def release(self, token: str) -> bool:
        """Delete the key only if it still carries ``token``."""
        with self._client.pipeline() as pipe:
            try:
                pipe.watch(self._key)
                current = pipe.get(self._key)
                if isinstance(current, bytes):
                    current = current.decode("utf-8")
                if current != token:
                    pipe.unwatch()
                    return False
                pipe.multi()
                pipe.delete(self._key)
                pipe.execute()
                return True
            except WatchError:
                return False
