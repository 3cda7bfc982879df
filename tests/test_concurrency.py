"""
Concurrency safety tests.

Demonstrates:
1. Distributed lock prevents two workers dispatching the same cycle.
2. Session stores expire entries and back the logout blacklist.
3. Login reads the user row with SELECT ... FOR UPDATE so concurrent
   failed attempts are counted one after another.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from src.api.dependencies import build_session_store
from src.infrastructure.locks import DistributedLock
from src.infrastructure.repositories import UserRepository
from src.infrastructure.session_store import (
    InMemorySessionStore,
    NullSessionStore,
    RedisSessionStore,
    blacklist_key,
    session_key,
)


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "notification_worker", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_called_once_with(
            "lock:notification_worker", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_calls_eval(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_called_once()
        args = mock_redis.eval.call_args.args
        assert args[1:] == (1, "lock:test-key", lock.token)

    def test_custom_prefix(self):
        lock = DistributedLock(AsyncMock(), "worker", prefix="jobs")
        assert lock.key == "jobs:worker"

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        with pytest.raises(RuntimeError, match="Could not acquire lock"):
            async with lock:
                pass

    @pytest.mark.asyncio
    async def test_only_one_of_concurrent_acquirers_wins(self):
        held: set[str] = set()

        async def fake_set(key, value, nx=False, ex=None):
            await asyncio.sleep(0)
            if nx and key in held:
                return None
            held.add(key)
            return True

        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=fake_set)

        locks = [DistributedLock(mock_redis, "notification_worker") for _ in range(5)]
        results = await asyncio.gather(*(lock.acquire() for lock in locks))
        assert results.count(True) == 1


class TestSessionStores:
    @pytest.mark.asyncio
    async def test_in_memory_expiry(self):
        clock = [100.0]
        store = InMemorySessionStore(clock=lambda: clock[0])

        await store.set_with_expiry("k", "v", ttl_seconds=10)
        assert await store.get("k") == "v"

        clock[0] = 110.0
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_in_memory_write_purges_expired_entries(self):
        clock = [0.0]
        store = InMemorySessionStore(clock=lambda: clock[0])
        for i in range(1000):
            await store.set_with_expiry(session_key(i, "tok"), "{}", ttl_seconds=10)

        clock[0] = 11.0
        await store.set_with_expiry("fresh", "v", ttl_seconds=10)
        assert len(store) == 1
        assert await store.get("fresh") == "v"

    @pytest.mark.asyncio
    async def test_in_memory_delete(self):
        store = InMemorySessionStore()
        await store.set_with_expiry("k", "v", ttl_seconds=10)
        await store.delete("k")
        await store.delete("missing")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_null_store_remembers_nothing(self):
        store = NullSessionStore()
        await store.set_with_expiry(blacklist_key("tok"), "true", 60)
        assert await store.get(blacklist_key("tok")) is None

    @pytest.mark.asyncio
    async def test_redis_store_uses_setex(self):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value="true")
        store = RedisSessionStore(mock_redis)

        await store.set_with_expiry(blacklist_key("tok"), "true", 60)
        mock_redis.setex.assert_called_once_with("blacklist:tok", 60, "true")

        assert await store.get("blacklist:tok") == "true"
        await store.delete(session_key(7, "tok"))
        mock_redis.delete.assert_called_once_with("session:7:tok")

    def test_build_session_store(self):
        assert isinstance(build_session_store("memory"), InMemorySessionStore)
        assert isinstance(build_session_store("none"), NullSessionStore)
        assert isinstance(build_session_store("redis"), RedisSessionStore)


class TestLoginRowLock:
    @pytest.mark.asyncio
    async def test_email_lookup_for_update_locks_the_row(self):
        session = AsyncMock()
        session.execute = AsyncMock(return_value=MagicMock())

        await UserRepository(session).get_by_email_for_update("a@example.com")

        statement = session.execute.call_args.args[0]
        sql = str(statement.compile(dialect=postgresql.dialect()))
        assert "FOR UPDATE" in sql
