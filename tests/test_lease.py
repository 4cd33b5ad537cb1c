from __future__ import annotations

import fakeredis

from moveout_accounts.security.lease import InMemoryLease, RedisLease


def test_memory_lease_is_exclusive_until_released():
    lease = InMemoryLease()

    token = lease.acquire(60)
    assert token
    assert lease.acquire(60) is None
    assert not lease.release("someone-else")
    assert lease.release(token)
    assert lease.acquire(60)


def test_memory_lease_expires():
    lease = InMemoryLease()

    assert lease.acquire(0)
    assert lease.acquire(60)


def test_redis_lease_only_released_by_holder():
    client = fakeredis.FakeStrictRedis()
    first = RedisLease(client, key="lease:test")
    second = RedisLease(client, key="lease:test")

    token = first.acquire(60)
    assert token
    assert second.acquire(60) is None
    assert not second.release("stale-token")
    assert client.get("lease:test") == token.encode()
    assert first.release(token)
    assert client.get("lease:test") is None
