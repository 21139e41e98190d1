"""
Per-entity locks.

Trip transitions are read-check-write sequences, so two requests touching
the same trip must not interleave.  ``LockManager.hold(key)`` provides
that exclusion:

* ``LocalLockManager`` -- one ``asyncio.Lock`` per key; enough for a
  single API process (and for the in-memory backend).
* ``RedisLockManager`` -- ``DistributedLock`` (SET NX EX to acquire, a Lua
  script for atomic check-and-delete on release) shared by every API
  process pointing at the same Redis.

Both give up after ``timeout`` seconds with ``ConcurrencyConflict``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator

import redis.asyncio as aioredis

from ridequick.domain.exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)


class DistributedLock:
    _RELEASE_LUA = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        client: aioredis.Redis,
        key: str,
        ttl_seconds: int = 30,
        timeout: float = 0.0,
        retry_interval: float = 0.05,
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.timeout = timeout
        self.retry_interval = retry_interval
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire once. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def acquire_within(
        self, timeout: float, retry_interval: float = 0.05
    ) -> bool:
        """Poll ``acquire`` until it succeeds or *timeout* elapses."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if await self.acquire():
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(retry_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(self._RELEASE_LUA, 1, self.key, self.token)

    # context-manager support; with the default timeout of 0 it tries once
    async def __aenter__(self):
        acquired = await self.acquire_within(self.timeout, self.retry_interval)
        if not acquired:
            logger.warning(
                "Lock %s held elsewhere for over %.1fs", self.key, self.timeout
            )
            raise ConcurrencyConflict(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()


class LockManager(ABC):
    @abstractmethod
    def hold(self, key: str) -> AsyncContextManager[None]:
        """Async context manager holding the lock for *key*."""


class LocalLockManager(LockManager):
    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Timed out waiting for lock %s", key)
            raise ConcurrencyConflict(f"Could not acquire lock: {key}") from None
        try:
            yield
        finally:
            lock.release()


class RedisLockManager(LockManager):
    def __init__(
        self,
        client: aioredis.Redis,
        ttl_seconds: int = 30,
        timeout: float = 5.0,
        retry_interval: float = 0.05,
    ):
        self.redis = client
        self.ttl = ttl_seconds
        self.timeout = timeout
        self.retry_interval = retry_interval

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with DistributedLock(
            self.redis,
            key,
            ttl_seconds=self.ttl,
            timeout=self.timeout,
            retry_interval=self.retry_interval,
        ):
            yield
