"""
Stampede protection for compute-on-miss.

The lock is a Redis key ``<namespace>lock:<key>`` written with an atomic
``SET NX EX`` and a random token; it is released only by its owner through
a compare-and-delete script, so an expired lock re-acquired by someone else
is never deleted by the original holder.

Callers that lose the race wait once, recheck the cache, and then compute
anyway: at least one supplier result is always produced, duplicates are
reduced but not ruled out.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from dormcache.core.config.constants import Stage
from dormcache.core.exceptions import CacheError
from dormcache.core.logging.logger import get_logger, log_stage
from dormcache.infrastructure.cache.key_codec import KeyCodec
from dormcache.infrastructure.cache.redis_client import RedisClient
from dormcache.infrastructure.cache.stats import StatsRecorder

logger = get_logger(__name__)

T = TypeVar("T")


class LockState(str, Enum):
    ACQUIRED = "acquired"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"


class StampedeGuard:
    """
    Best-effort single-flight around a compute function.

    Args:
        redis_client: Transport used for the lock key
        codec: Builds lock keys in the cache namespace
        stats: Receives lock errors
        lock_ttl: Lock expiry in seconds; bounds how long a crashed holder
            can block others
        wait: Seconds a losing caller waits before its single recheck
    """

    def __init__(
        self,
        redis_client: RedisClient,
        codec: KeyCodec,
        stats: StatsRecorder,
        lock_ttl: int = 10,
        wait: float = 0.1,
    ):
        self._redis = redis_client
        self._codec = codec
        self._stats = stats
        self._lock_ttl = lock_ttl
        self._wait = wait

    async def acquire(self, key: str) -> tuple[LockState, str | None]:
        token = uuid.uuid4().hex
        try:
            acquired = await self._redis.set(
                self._codec.lock_key(key), token, ttl=self._lock_ttl, nx=True
            )
        except CacheError as e:
            self._stats.record_error("lock")
            log_stage(logger, Stage.COMPUTE_ON_MISS.value, "Lock attempt failed",
                      level="warning", key=key, error=str(e))
            return LockState.UNAVAILABLE, None
        return (LockState.ACQUIRED, token) if acquired else (LockState.BUSY, None)

    async def release(self, key: str, token: str) -> bool:
        try:
            return await self._redis.delete_if_equals(self._codec.lock_key(key), token)
        except CacheError as e:
            # Lock expires on its own after lock_ttl
            self._stats.record_error("unlock")
            log_stage(logger, Stage.COMPUTE_ON_MISS.value, "Lock release failed",
                      level="warning", key=key, error=str(e))
            return False

    async def run(
        self,
        key: str,
        compute: Callable[[], Awaitable[T]],
        recheck: Callable[[], Awaitable[Any]],
    ) -> T:
        """
        Execute ``compute`` under the lock for ``key``.

        ``recheck`` returns the cached value or None; it is called
        once by callers that found the lock held. Exceptions raised by
        ``compute`` propagate unchanged after the lock is released.
        """
        state, token = await self.acquire(key)

        if state is LockState.ACQUIRED:
            try:
                return await compute()
            finally:
                await self.release(key, token)

        if state is LockState.BUSY:
            log_stage(logger, Stage.COMPUTE_ON_MISS.value, "Key locked, waiting for holder",
                      level="debug", key=key)
            await asyncio.sleep(self._wait)
            value = await recheck()
            if value is not None:
                return value

        return await compute()

