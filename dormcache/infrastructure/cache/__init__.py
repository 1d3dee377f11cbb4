"""
Cache Module

Provides two-tier caching (process-local hot tier + Redis) with tag
invalidation, stampede protection and a warmup job.
"""

from .cache_service import CacheOptions, CacheService
from .distributed_store import CacheItem, DistributedStore
from .hot_tier import MISSING, LocalHotTier
from .key_codec import KeyCodec
from .redis_client import RedisClient
from .stampede_guard import LockState, StampedeGuard
from .stats import StatsRecorder, StatsSnapshot
from .tag_index import TagIndex
from .warmup import WarmupScheduler, WarmupSource, WarmupStats

__all__ = [
    "CacheService",
    "CacheOptions",
    "CacheItem",
    "DistributedStore",
    "LocalHotTier",
    "MISSING",
    "KeyCodec",
    "RedisClient",
    "StampedeGuard",
    "LockState",
    "StatsRecorder",
    "StatsSnapshot",
    "TagIndex",
    "WarmupScheduler",
    "WarmupSource",
    "WarmupStats",
]
