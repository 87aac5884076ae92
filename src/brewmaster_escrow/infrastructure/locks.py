"""Per-transaction-ID lock providers.

Every engine operation holds the lock for its transaction while it reads,
validates and writes the record, so two operations on the same transaction
can never interleave their read-then-write steps.

    - InProcessLockProvider: asyncio.Lock per ID, for a single event loop.
    - RedisLockProvider: Redis lock per ID, for several engine processes
      sharing one document store.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from redis.exceptions import LockError

from brewmaster_escrow.domain.exceptions import StoreError
from brewmaster_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import redis.asyncio as aioredis

logger = get_logger(__name__)


class InProcessLockProvider:
    """asyncio locks keyed by transaction ID.

    Locks are held in a weak map: once no operation references a lock it is
    dropped, so the map does not grow with the number of transactions seen.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _get_lock(self, transaction_id: str) -> asyncio.Lock:
        lock = self._locks.get(transaction_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[transaction_id] = lock
        return lock

    @asynccontextmanager
    async def lock(self, transaction_id: str) -> AsyncIterator[None]:
        lock = self._get_lock(transaction_id)
        async with lock:
            yield


class RedisLockProvider:
    """Redis-backed locks named ``escrow:lock:<transaction_id>``."""

    def __init__(
        self,
        redis: aioredis.Redis,
        timeout: float = 30.0,
        blocking_timeout: float | None = 10.0,
        prefix: str = "escrow:lock:",
    ) -> None:
        self._redis = redis
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout
        self._prefix = prefix

    @asynccontextmanager
    async def lock(self, transaction_id: str) -> AsyncIterator[None]:
        name = f"{self._prefix}{transaction_id}"
        redis_lock = self._redis.lock(
            name,
            timeout=self._timeout,
            blocking_timeout=self._blocking_timeout,
        )
        try:
            acquired = await redis_lock.acquire()
        except LockError as err:
            raise StoreError(
                f"Could not acquire lock {name}: {err}",
                transaction_id=transaction_id,
            ) from err
        if not acquired:
            logger.warning("lock.acquire_timeout", transaction_id=transaction_id, lock=name)
            raise StoreError(
                f"Timed out waiting for lock {name}",
                transaction_id=transaction_id,
            )
        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError:
                # Lock expired while held; the next writer already owns it.
                logger.warning("lock.release_failed", transaction_id=transaction_id, lock=name)
