"""
Distributed cache tier (Redis).

Responsibility: JSON values with TTL under the namespace prefix, durable tag
member sets, batch reads and writes, and keyspace administration.

Failure contract: this layer never raises. Redis failures are logged,
counted in ``errors`` and surfaced as the neutral result of the operation
(None, False, 0 or an empty collection), so callers always "proceed
without cache".
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import orjson

from dormcache.core.config.constants import SCAN_BATCH_SIZE, Stage
from dormcache.core.exceptions import CacheError, CacheSerializationError
from dormcache.core.logging.logger import get_logger, log_stage
from dormcache.infrastructure.cache.key_codec import KeyCodec
from dormcache.infrastructure.cache.redis_client import RedisClient
from dormcache.infrastructure.cache.stats import StatsRecorder

logger = get_logger(__name__)


@dataclass
class CacheItem:
    """One entry of a batch write."""

    key: str
    value: Any
    ttl: int | None = None
    tags: Sequence[str] = field(default_factory=tuple)


def encode_value(value: Any) -> str:
    """Serialize a value to a JSON string."""
    try:
        return orjson.dumps(value, option=orjson.OPT_NON_STR_KEYS).decode("utf-8")
    except orjson.JSONEncodeError as e:
        raise CacheSerializationError.from_exception(e, message="Value is not JSON serializable") from e


def decode_value(raw: str) -> Any:
    """Parse a stored JSON string."""
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise CacheSerializationError.from_exception(e, message="Stored value is not valid JSON") from e


class DistributedStore:
    """
    Redis-backed cache tier.

    All keys accepted by this class are relative; they are qualified with
    the codec's namespace before reaching Redis.
    """

    def __init__(self, redis_client: RedisClient, codec: KeyCodec, stats: StatsRecorder):
        self._redis = redis_client
        self._codec = codec
        self._stats = stats

    @property
    def redis(self) -> RedisClient:
        return self._redis

    def _failed(self, operation: str, error: Exception, **context) -> None:
        self._stats.record_error(operation)
        log_stage(
            logger, Stage.REDIS.value, f"Cache {operation} failed",
            level="warning", error=str(error), **context,
        )

    # -------------------------------------------------------------------------
    # Single-key operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Return the decoded value, or None if absent, expired or unreadable."""
        try:
            raw = await self._redis.get(self._codec.full_key(key))
        except CacheError as e:
            self._failed("get", e, key=key)
            return None

        if raw is None:
            return None

        try:
            return decode_value(raw)
        except CacheSerializationError as e:
            self._failed("decode", e, key=key)
            return None

    async def set(
        self, key: str, value: Any, ttl: int | None, tags: Iterable[str] = ()
    ) -> bool:
        """
        Store ``value`` as JSON.

        ``ttl > 0`` sets an expiry; otherwise the entry persists until
        deleted. Every tag gets the fully-qualified key added to its set.
        """
        try:
            payload = encode_value(value)
        except CacheSerializationError as e:
            self._failed("encode", e, key=key)
            return False

        full_key = self._codec.full_key(key)
        try:
            await self._redis.set(full_key, payload, ttl=ttl)
        except CacheError as e:
            self._failed("set", e, key=key)
            return False

        for tag in tags:
            await self.add_tag_member(tag, full_key)
        return True

    async def delete(self, key: str) -> bool:
        """Delete one entry. Returns True when something was removed."""
        try:
            return await self._redis.delete(self._codec.full_key(key)) > 0
        except CacheError as e:
            self._failed("delete", e, key=key)
            return False

    async def exists(self, key: str) -> bool:
        try:
            return await self._redis.exists(self._codec.full_key(key)) > 0
        except CacheError as e:
            self._failed("exists", e, key=key)
            return False

    async def ttl(self, key: str) -> int:
        """Remaining seconds; -1 when the key has no expiry, -2 when absent."""
        try:
            return await self._redis.ttl(self._codec.full_key(key))
        except CacheError as e:
            self._failed("ttl", e, key=key)
            return -2

    # -------------------------------------------------------------------------
    # Tag sets
    # -------------------------------------------------------------------------

    async def add_tag_member(self, tag: str, full_key: str) -> bool:
        try:
            await self._redis.sadd(self._codec.tag_key(tag), full_key)
            return True
        except CacheError as e:
            self._failed("tag_add", e, tag=tag, key=full_key)
            return False

    async def remove_tag_member(self, tag: str, full_key: str) -> bool:
        try:
            await self._redis.srem(self._codec.tag_key(tag), full_key)
            return True
        except CacheError as e:
            self._failed("tag_remove", e, tag=tag, key=full_key)
            return False

    async def tag_members(self, tag: str) -> set[str]:
        try:
            return await self._redis.smembers(self._codec.tag_key(tag))
        except CacheError as e:
            self._failed("tag_members", e, tag=tag)
            return set()

    async def delete_tag_members(self, tag: str) -> tuple[int, set[str]]:
        """
        Delete every member of ``tag`` and the tag set itself.

        Returns:
            (entries actually deleted, fully-qualified members read)
        """
        tag_key = self._codec.tag_key(tag)
        try:
            members = await self._redis.smembers(tag_key)
            deleted = await self._redis.delete(*members) if members else 0
            await self._redis.delete(tag_key)
        except CacheError as e:
            self._failed("delete_by_tag", e, tag=tag)
            return 0, set()

        log_stage(
            logger, Stage.INVALIDATION.value, "Tag invalidated",
            tag=tag, members=len(members), deleted=deleted,
        )
        return deleted, members

    async def delete_by_tag(self, tag: str) -> int:
        """Delete every entry registered under ``tag``; returns the count removed."""
        deleted, _ = await self.delete_tag_members(tag)
        return deleted

    # -------------------------------------------------------------------------
    # Batch operations
    # -------------------------------------------------------------------------

    async def mget(self, keys: Sequence[str]) -> dict[str, Any]:
        """
        Batched read in one MGET round-trip.

        Keys that are absent or hold unreadable JSON are left out of the
        result.
        """
        if not keys:
            return {}

        try:
            raw_values = await self._redis.mget([self._codec.full_key(k) for k in keys])
        except CacheError as e:
            self._failed("mget", e, keys=len(keys))
            return {}

        results: dict[str, Any] = {}
        for key, raw in zip(keys, raw_values):
            if raw is None:
                continue
            try:
                results[key] = decode_value(raw)
            except CacheSerializationError as e:
                self._failed("decode", e, key=key)
        return results

    async def mset(self, items: Iterable[CacheItem]) -> int:
        """Write each item independently; returns how many succeeded."""
        written = 0
        for item in items:
            if await self.set(item.key, item.value, item.ttl, item.tags):
                written += 1
        return written

    # -------------------------------------------------------------------------
    # Keyspace administration
    # -------------------------------------------------------------------------

    async def scan_keys(self, pattern: str = "*", limit: int | None = None) -> list[str]:
        """
        Relative cache keys matching a glob pattern, via cursor-based SCAN.

        Tag sets and stampede locks are not listed.
        """
        try:
            keys = await self._redis.scan(self._codec.full_key(pattern), count=SCAN_BATCH_SIZE)
        except CacheError as e:
            self._failed("scan", e, pattern=pattern)
            return []

        listed = [self._codec.strip_prefix(k) for k in keys if not self._codec.is_internal(k)]
        return listed[:limit] if limit is not None else listed

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every cache key matching a glob pattern; returns the count removed.

        Tag sets and stampede locks are left alone even when they match.
        """
        return await self._delete_matching(self._codec.full_key(pattern), pattern, internal=False)

    async def clear_namespace(self) -> int:
        """Delete every key under the namespace prefix, bookkeeping included."""
        return await self._delete_matching(f"{self._codec.namespace}*", "*", internal=True)

    async def _delete_matching(self, match: str, pattern: str, internal: bool) -> int:
        try:
            keys = await self._redis.scan(match, count=SCAN_BATCH_SIZE)
            if not internal:
                keys = [k for k in keys if not self._codec.is_internal(k)]
            deleted = 0
            for start in range(0, len(keys), SCAN_BATCH_SIZE):
                deleted += await self._redis.delete(*keys[start:start + SCAN_BATCH_SIZE])
        except CacheError as e:
            self._failed("delete_pattern", e, pattern=pattern)
            return 0

        log_stage(logger, Stage.INVALIDATION.value, "Pattern deleted", pattern=pattern, deleted=deleted)
        return deleted
