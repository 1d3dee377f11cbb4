"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import fnmatch
import math
import time
from collections import defaultdict
from unittest.mock import MagicMock

import pytest

from dormcache.core.config.settings import Settings
from dormcache.infrastructure.cache.cache_service import CacheOptions, CacheService
from dormcache.infrastructure.cache.distributed_store import DistributedStore
from dormcache.infrastructure.cache.key_codec import KeyCodec
from dormcache.infrastructure.cache.stats import StatsRecorder
from dormcache.infrastructure.monitoring.metrics_collector import MetricsCollector

# ============================================================================
# In-Memory Redis
# ============================================================================


class InMemoryRedis:
    """
    In-memory stand-in for RedisClient.

    Implements the same async surface (strings with TTL, sets, SCAN, the
    owner-checked delete) over plain dicts, with expiry on time.monotonic().
    """

    def __init__(self):
        self.data: dict[str, str] = {}
        self.sets: defaultdict[str, set[str]] = defaultdict(set)
        self.expiry: dict[str, float] = {}
        self.connected = False

    def _purge(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and time.monotonic() >= deadline:
            self.data.pop(key, None)
            self.sets.pop(key, None)
            self.expiry.pop(key, None)

    def _all_keys(self):
        for key in list(self.data) + list(self.sets):
            self._purge(key)
        return [k for k in self.data] + [k for k, members in self.sets.items() if members]

    async def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False

    def is_connected(self):
        return self.connected

    async def health_check(self):
        return {"status": "healthy", "type": "in_memory", "keys": len(self._all_keys())}

    async def get(self, key):
        self._purge(key)
        return self.data.get(key)

    async def set(self, key, value, ttl=None, nx=False):
        self._purge(key)
        if nx and key in self.data:
            return False
        self.data[key] = value
        if ttl and ttl > 0:
            self.expiry[key] = time.monotonic() + ttl
        else:
            self.expiry.pop(key, None)
        return True

    async def mget(self, keys):
        return [await self.get(key) for key in keys]

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            self._purge(key)
            if self.data.pop(key, None) is not None:
                removed += 1
            elif self.sets.pop(key, None):
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def exists(self, *keys):
        count = 0
        for key in keys:
            self._purge(key)
            if key in self.data or self.sets.get(key):
                count += 1
        return count

    async def ttl(self, key):
        self._purge(key)
        if key not in self.data and not self.sets.get(key):
            return -2
        deadline = self.expiry.get(key)
        if deadline is None:
            return -1
        return math.ceil(deadline - time.monotonic())

    async def delete_if_equals(self, key, expected):
        if await self.get(key) == expected:
            return await self.delete(key) > 0
        return False

    async def sadd(self, name, *values):
        before = len(self.sets[name])
        self.sets[name].update(values)
        return len(self.sets[name]) - before

    async def srem(self, name, *values):
        members = self.sets.get(name, set())
        removed = len(members & set(values))
        members.difference_update(values)
        return removed

    async def smembers(self, name):
        return set(self.sets.get(name, set()))

    async def scan(self, match, count=200, limit=None):
        keys = [k for k in self._all_keys() if fnmatch.fnmatchcase(k, match)]
        return keys[:limit] if limit is not None else keys


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        WARMUP_BATCH_DELAY=0,
        CACHE_LOCK_WAIT=0.01,
    )


@pytest.fixture
def mock_metrics():
    """MetricsCollector double so tests never touch the global registry."""
    return MagicMock(spec=MetricsCollector)


# ============================================================================
# Cache Fixtures
# ============================================================================


@pytest.fixture
def in_memory_redis_client():
    """
    In-memory Redis client stub for testing.

    Mimics Redis operations using in-memory storage.
    """
    return InMemoryRedis()


@pytest.fixture
def codec():
    return KeyCodec("expense_system:")


@pytest.fixture
def stats(mock_metrics):
    return StatsRecorder(mock_metrics)


@pytest.fixture
def store(in_memory_redis_client, codec, stats):
    """DistributedStore over the in-memory Redis."""
    return DistributedStore(in_memory_redis_client, codec, stats)


@pytest.fixture
def cache_options():
    return CacheOptions(lock_wait=0.01)


@pytest.fixture
def cache_service(in_memory_redis_client, cache_options, mock_metrics):
    """CacheService wired to the in-memory Redis."""
    return CacheService(in_memory_redis_client, cache_options, metrics=mock_metrics)
