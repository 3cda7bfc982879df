"""
Session / token-blacklist storage.

A small key-value capability with expiry, injected wherever session state
is needed.  Three interchangeable backends:

* ``NullSessionStore``      -- remembers nothing (sessions disabled)
* ``InMemorySessionStore``  -- per-process dict, expired entries dropped on
                               read and purged on every write
* ``RedisSessionStore``     -- ``SETEX`` / ``GET`` / ``DEL`` on Redis

Keys used by the auth layer::

    session:<user_id>:<token>   -> JSON session data   (TTL 24 h)
    blacklist:<token>           -> "true"              (TTL 24 h)
"""

from __future__ import annotations

import time
from typing import Optional, Protocol

import redis.asyncio as aioredis


class SessionStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...


class NullSessionStore:
    async def get(self, key: str) -> Optional[str]:
        return None

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None


class InMemorySessionStore:
    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        self._purge(now)
        self._data[key] = (value, now + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)

    def _purge(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._data.items() if now >= expires_at]
        for key in expired:
            del self._data[key]


class RedisSessionStore:
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.redis.setex(key, ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self.redis.delete(key)


def session_key(user_id: int, token: str) -> str:
    return f"session:{user_id}:{token}"


def blacklist_key(token: str) -> str:
    return f"blacklist:{token}"
