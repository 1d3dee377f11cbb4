#!/usr/bin/env python3
"""
Two-Tier Cache Service

Architecture:
    CacheService (Public API)
        ├── LocalHotTier (process-local mirror of hot keys)
        ├── DistributedStore (Redis, authoritative)
        │   └── RedisClient
        ├── TagIndex (tag -> keys, durable + mirrored)
        ├── StampedeGuard (lock around compute-on-miss)
        └── StatsRecorder (hits / misses / sets / deletes / errors)

Read path: hot tier -> Redis -> (get_or_set only) locked supplier call ->
Redis write + tag registration -> hot tier promotion.

The service is built once at startup (FastAPI lifespan) and injected where
needed; there is no module-level instance. A Redis outage never surfaces as
an exception from this class, with one deliberate exception: errors raised
by a ``get_or_set`` supplier propagate unchanged.
"""

from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from fnmatch import fnmatchcase
from typing import Any, TypeVar

from dormcache.core.config.constants import Stage
from dormcache.core.config.settings import Settings, get_settings
from dormcache.core.exceptions import CacheConnectionError
from dormcache.core.logging.logger import get_logger, log_stage
from dormcache.infrastructure.cache.distributed_store import CacheItem, DistributedStore
from dormcache.infrastructure.cache.hot_tier import MISSING, LocalHotTier
from dormcache.infrastructure.cache.key_codec import KeyCodec
from dormcache.infrastructure.cache.redis_client import RedisClient
from dormcache.infrastructure.cache.stampede_guard import StampedeGuard
from dormcache.infrastructure.cache.stats import StatsRecorder
from dormcache.infrastructure.cache.tag_index import TagIndex
from dormcache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

T = TypeVar("T")

Supplier = Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class CacheOptions:
    """Every recognized cache option, with its default."""

    namespace: str = "expense_system:"
    default_ttl: int = 3600
    lock_ttl: int = 10
    lock_wait: float = 0.1
    hot_tier_enabled: bool = True
    hot_tier_max_size: int = 100
    hot_tier_ttl: int = 300
    hot_tier_promotion_threshold: int = 1

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheOptions":
        cache = settings.cache
        hot = settings.hot_tier
        return cls(
            namespace=cache.CACHE_KEY_PREFIX,
            default_ttl=cache.CACHE_DEFAULT_TTL,
            lock_ttl=cache.CACHE_LOCK_TTL,
            lock_wait=cache.CACHE_LOCK_WAIT,
            hot_tier_enabled=hot.HOT_TIER_ENABLED,
            hot_tier_max_size=hot.HOT_TIER_MAX_SIZE,
            hot_tier_ttl=hot.HOT_TIER_TTL,
            hot_tier_promotion_threshold=hot.HOT_TIER_PROMOTION_THRESHOLD,
        )


class CacheService:
    """
    Public cache API for request handlers and database-service wrappers.

    Usage:
        cache = CacheService.from_settings(get_settings())
        await cache.init()

        bill = await cache.get_or_set(
            "bill:detail:42",
            lambda: repository.get_bill_by_id(42),
            ttl=CacheTTL.BILL_DETAIL,
            tags=[CacheTags.BILL],
        )
        await cache.delete_by_tag(CacheTags.BILL)

        await cache.shutdown()
    """

    def __init__(
        self,
        redis_client: RedisClient,
        options: CacheOptions | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Build all layers around one Redis client.

        STAGE-2.0: Cache service initialization
        """
        self._options = options or CacheOptions()
        self._redis = redis_client
        self._metrics = metrics or get_metrics_collector()

        self._codec = KeyCodec(self._options.namespace)
        self._stats = StatsRecorder(self._metrics)
        self._store = DistributedStore(redis_client, self._codec, self._stats)
        self._hot_tier = LocalHotTier(
            max_size=self._options.hot_tier_max_size,
            default_ttl=self._options.hot_tier_ttl,
            enabled=self._options.hot_tier_enabled,
            promotion_threshold=self._options.hot_tier_promotion_threshold,
        )
        self._tags = TagIndex(self._store, self._hot_tier, self._codec)
        self._guard = StampedeGuard(
            redis_client,
            self._codec,
            self._stats,
            lock_ttl=self._options.lock_ttl,
            wait=self._options.lock_wait,
        )
        self._initialized = False

        log_stage(
            logger, Stage.INITIALIZATION.value, "Cache service created",
            namespace=self._options.namespace,
            hot_tier_enabled=self._options.hot_tier_enabled,
            hot_tier_max_size=self._options.hot_tier_max_size,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CacheService":
        settings = settings or get_settings()
        return cls(RedisClient(settings), CacheOptions.from_settings(settings))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def init(self) -> bool:
        """
        Connect to Redis.

        Returns False (and keeps serving as an always-miss cache) when Redis
        cannot be reached after the configured retries.
        """
        try:
            await self._redis.connect()
        except CacheConnectionError as e:
            logger.warning(
                "Cache starting without Redis; every read will miss",
                stage=Stage.INITIALIZATION.value,
                error=e.message,
            )
            return False

        self._initialized = True
        log_stage(logger, Stage.INITIALIZATION.value, "Cache service ready")
        return True

    async def shutdown(self) -> None:
        """Drop process-local state and close the Redis pool."""
        self._hot_tier.clear()
        self._tags.clear()
        self._metrics.set_hot_tier_size(0)
        await self._redis.disconnect()
        self._initialized = False
        log_stage(logger, Stage.INITIALIZATION.value, "Cache service stopped")

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def codec(self) -> KeyCodec:
        return self._codec

    @property
    def options(self) -> CacheOptions:
        return self._options

    # -------------------------------------------------------------------------
    # Hot tier helpers
    # -------------------------------------------------------------------------

    def _mirror(self, key: str, value: Any, ttl: int | None = None) -> None:
        self._hot_tier.set(key, value, ttl)
        self._metrics.set_hot_tier_size(self._hot_tier.size)

    def _unmirror(self, key: str) -> None:
        if self._hot_tier.evict(key):
            self._metrics.set_hot_tier_size(self._hot_tier.size)

    async def _promote(self, key: str, value: Any) -> None:
        """Mirror a Redis hit, never outliving the Redis entry."""
        if not self._hot_tier.record_access(key):
            return
        remaining = await self._store.ttl(key)
        if remaining == -2:
            return
        self._mirror(key, value, remaining if remaining > 0 else None)

    # -------------------------------------------------------------------------
    # Core operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """
        Read through hot tier then Redis.

        A failed Redis read is counted as an error and as a miss.
        """
        value = self._hot_tier.get(key)
        if value is not MISSING:
            self._stats.record_hit("hot")
            log_stage(logger, Stage.HOT_TIER_LOOKUP.value, "Hot tier hit", level="debug", cache_key=key)
            return value

        value = await self._store.get(key)
        if value is None:
            self._stats.record_miss()
            log_stage(logger, Stage.STORE_LOOKUP.value, "Cache miss", level="debug", cache_key=key)
            return None

        self._stats.record_hit("store")
        log_stage(logger, Stage.STORE_LOOKUP.value, "Store hit", level="debug", cache_key=key)
        await self._promote(key, value)
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        tags: Iterable[str] = (),
    ) -> bool:
        """
        Write to Redis, register tags and refresh the hot copy.

        ``ttl=None`` uses the configured default; ``ttl <= 0`` stores
        without expiry.
        """
        ttl = self._options.default_ttl if ttl is None else ttl
        tags = list(tags)

        if not await self._store.set(key, value, ttl):
            # Never leave a hot copy that disagrees with a failed write
            self._unmirror(key)
            return False

        full_key = self._codec.full_key(key)
        for tag in tags:
            await self._tags.register(tag, full_key)

        self._stats.record_set()
        if self._hot_tier.should_promote(key):
            self._mirror(key, value, ttl)
        else:
            self._unmirror(key)

        log_stage(logger, Stage.CACHE_WRITE.value, "Cache set", level="debug",
                  cache_key=key, ttl=ttl, tags=tags)
        return True

    async def delete(self, key: str) -> bool:
        """Remove an entry from both tiers and from every mirrored tag."""
        removed = await self._store.delete(key)
        self._unmirror(key)
        await self._tags.forget_key(self._codec.full_key(key))

        if removed:
            self._stats.record_delete()
        log_stage(logger, Stage.INVALIDATION.value, "Cache delete", level="debug",
                  cache_key=key, removed=removed)
        return removed

    async def delete_by_tag(self, tag: str) -> int:
        """Invalidate every entry registered under ``tag``."""
        deleted = await self._tags.invalidate(tag)
        self._stats.record_delete(deleted)
        self._metrics.set_hot_tier_size(self._hot_tier.size)
        return deleted

    async def get_or_set(
        self,
        key: str,
        supplier: Supplier[T],
        ttl: int | None = None,
        tags: Iterable[str] = (),
    ) -> T:
        """
        Cache-aside read with stampede protection.

        STAGE-2.5: Compute on miss

        A ``None`` result is returned but not cached. Supplier exceptions
        propagate unchanged.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        tags = list(tags)

        async def compute() -> T:
            log_stage(logger, Stage.COMPUTE_ON_MISS.value, "Computing uncached value",
                      level="debug", cache_key=key)
            value = await supplier()
            if value is not None:
                await self.set(key, value, ttl, tags)
            return value

        return await self._guard.run(key, compute, recheck=lambda: self.get(key))

    # -------------------------------------------------------------------------
    # Batch operations
    # -------------------------------------------------------------------------

    async def mget(self, keys: Sequence[str]) -> dict[str, Any]:
        """
        Batched read: hot tier first, then one Redis round-trip.

        Missing keys are absent from the result.
        """
        results: dict[str, Any] = {}
        remaining: list[str] = []

        for key in dict.fromkeys(keys):
            value = self._hot_tier.get(key)
            if value is not MISSING:
                self._stats.record_hit("hot")
                results[key] = value
            else:
                remaining.append(key)

        fetched = await self._store.mget(remaining) if remaining else {}
        for key in remaining:
            value = fetched.get(key)
            if value is None:
                self._stats.record_miss()
                continue
            self._stats.record_hit("store")
            results[key] = value
            await self._promote(key, value)

        log_stage(logger, Stage.BATCH.value, "Batch get", level="debug",
                  requested=len(keys), found=len(results))
        return results

    async def mset(self, items: Iterable[CacheItem]) -> int:
        """Write each item independently; returns how many succeeded."""
        written = 0
        total = 0
        for item in items:
            total += 1
            if await self.set(item.key, item.value, item.ttl, item.tags):
                written += 1

        log_stage(logger, Stage.BATCH.value, "Batch set", level="debug", requested=total, written=written)
        return written

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    async def exists(self, key: str) -> bool:
        return await self._store.exists(key)

    async def ttl(self, key: str) -> int:
        return await self._store.ttl(key)

    async def inspect_key(self, key: str) -> dict[str, Any]:
        """Existence, value and remaining TTL of one key, without touching stats."""
        exists = await self._store.exists(key)
        return {
            "key": key,
            "exists": exists,
            "value": await self._store.get(key) if exists else None,
            "ttl": await self._store.ttl(key) if exists else -2,
        }

    async def list_keys(self, pattern: str = "*", limit: int = 100) -> list[str]:
        return await self._store.scan_keys(pattern, limit)

    def hot_keys(self) -> list[str]:
        return self._hot_tier.keys()

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern in both tiers."""
        deleted = await self._store.delete_pattern(pattern)
        for key in self._hot_tier.keys():
            if fnmatchcase(key, pattern):
                self._unmirror(key)
        self._stats.record_delete(deleted)
        return deleted

    async def clear_all(self) -> int:
        """Delete the whole namespace and reset process-local state."""
        deleted = await self._store.clear_namespace()
        self._hot_tier.clear()
        self._tags.clear()
        self._metrics.set_hot_tier_size(0)
        self._stats.record_delete(deleted)
        logger.warning("Cache namespace cleared", stage=Stage.ADMIN.value, deleted=deleted)
        return deleted

    def get_stats(self) -> dict[str, Any]:
        """Counters plus hot tier occupancy and mirrored tag count."""
        self._metrics.set_hot_tier_size(self._hot_tier.size)
        return {
            **self._stats.snapshot().to_dict(),
            "hot_tier_size": self._hot_tier.size,
            "hot_tier_max_size": self._hot_tier.max_size,
            "tag_count": self._tags.tag_count,
            "redis_connected": self._redis.is_connected(),
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

    def reset_stats(self) -> None:
        self._stats.reset()
        logger.info("Cache statistics reset", stage=Stage.ADMIN.value)

    async def health_check(self) -> dict[str, Any]:
        """Health of both tiers; degraded whenever Redis is not healthy."""
        health = {
            "status": "healthy",
            "hot_tier": {
                "status": "healthy" if self._hot_tier.enabled else "disabled",
                "size": self._hot_tier.size,
                "max_size": self._hot_tier.max_size,
            },
            "redis": await self._redis.health_check(),
        }
        if health["redis"].get("status") != "healthy":
            health["status"] = "degraded"
        return health
