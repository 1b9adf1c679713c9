"""Per-entity mutual exclusion for mutating operations.

Every write to a deal runs under ``deal:<uuid>``, every write to a KYC
record under ``kyc:<user uuid>``, and deal-number allocation under
``deal-sequence``. Two backends:

    InProcessLockManager  asyncio.Lock per key; one worker process
    RedisLockManager      redis.asyncio locks; several workers, one database

Both raise ConcurrentModificationError when a lock cannot be acquired
within ``blocking_timeout`` seconds.
"""

from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Protocol

import redis.asyncio as aioredis
from redis.exceptions import LockError

from safe_transfer.domain.exceptions import ConcurrentModificationError
from safe_transfer.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from safe_transfer.config import Settings

logger = get_logger(__name__)

DEAL_SEQUENCE_LOCK = "deal-sequence"


def deal_lock_key(deal_uuid: str) -> str:
    return f"deal:{deal_uuid}"


def kyc_lock_key(user_id: str) -> str:
    return f"kyc:{user_id}"


def _split_key(key: str) -> tuple[str, str]:
    entity, _, entity_id = key.partition(":")
    return entity or key, entity_id or key


class LockManager(Protocol):
    def hold(self, key: str) -> AbstractAsyncContextManager[None]: ...


class InProcessLockManager:
    """asyncio.Lock registry; entries are dropped once nobody holds or waits."""

    def __init__(self, blocking_timeout: float = 10.0) -> None:
        self._blocking_timeout = blocking_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._blocking_timeout)
            except TimeoutError as exc:
                logger.warning("lock.timeout", key=key, backend="memory")
                raise ConcurrentModificationError(*_split_key(key)) from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    async def close(self) -> None:
        self._locks.clear()
        self._users.clear()


class RedisLockManager:
    """Distributed locks stored under ``lock:<key>`` in Redis."""

    def __init__(self, client: aioredis.Redis, timeout: float = 30.0, blocking_timeout: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._client.lock(
            f"lock:{key}",
            timeout=self._timeout,
            blocking_timeout=self._blocking_timeout,
        )
        acquired = await lock.acquire()
        if not acquired:
            logger.warning("lock.timeout", key=key, backend="redis")
            raise ConcurrentModificationError(*_split_key(key))
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired while held; row version counters still catch lost updates.
                logger.warning("lock.expired_before_release", key=key)

    @classmethod
    async def connect(cls, url: str, timeout: float = 30.0, blocking_timeout: float = 10.0) -> RedisLockManager:
        client = aioredis.from_url(url, decode_responses=True)
        await client.ping()
        logger.info("redis.connected", url=url)
        return cls(client, timeout=timeout, blocking_timeout=blocking_timeout)

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("redis.disconnected")


async def build_lock_manager(settings: Settings) -> InProcessLockManager | RedisLockManager:
    """Create the backend named by ``lock_backend``."""
    if settings.lock_backend == "redis":
        return await RedisLockManager.connect(
            settings.redis_url,
            timeout=settings.lock_timeout_seconds,
            blocking_timeout=settings.lock_blocking_timeout_seconds,
        )
    return InProcessLockManager(blocking_timeout=settings.lock_blocking_timeout_seconds)
