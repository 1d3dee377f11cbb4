"""
Unit Tests for DistributedStore

Tests JSON storage under the namespace, tag sets, batch operations, keyspace
administration and the never-raise failure contract.
"""

import asyncio

import orjson
import pytest
from test_fixtures.cache_factory import CacheTestFactory

from dormcache.core.exceptions import CacheSerializationError
from dormcache.infrastructure.cache.distributed_store import (
    CacheItem,
    DistributedStore,
    decode_value,
    encode_value,
)


@pytest.mark.unit
class TestSingleKey:
    """Test single-key operations."""

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        """Test that a stored JSON value is returned unchanged."""
        value = {"id": 42, "status": "pending", "amount": 12.5, "items": [1, 2]}
        assert await store.set("bill:detail:42", value, 1800) is True
        assert await store.get("bill:detail:42") == value

    @pytest.mark.asyncio
    async def test_keys_are_namespaced(self, store, in_memory_redis_client):
        """Test that Redis sees the fully-qualified key."""
        await store.set("user:profile:1", {"id": 1}, 60)
        assert "expense_system:user:profile:1" in in_memory_redis_client.data

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, store):
        """Test that an absent key reads as None."""
        assert await store.get("bill:detail:404") is None

    @pytest.mark.asyncio
    async def test_entry_expires(self, store):
        """Test that a ttl=1 entry is gone after 1.1 seconds."""
        await store.set("system:config", {"v": 1}, 1)
        await asyncio.sleep(1.1)
        assert await store.get("system:config") is None

    @pytest.mark.asyncio
    async def test_zero_ttl_never_expires(self, store):
        """Test that ttl <= 0 stores without expiry."""
        await store.set("system:config", {"v": 1}, 0)
        assert await store.ttl("system:config") == -1

    @pytest.mark.asyncio
    async def test_unserializable_value_skipped(self, store, stats, in_memory_redis_client):
        """Test that a value orjson cannot encode is not written."""
        assert await store.set("bad", object(), 60) is False
        assert in_memory_redis_client.data == {}
        assert stats.errors == 1

    @pytest.mark.asyncio
    async def test_corrupt_payload_reads_as_miss(self, store, stats, in_memory_redis_client):
        """Test that undecodable JSON counts as an error and a miss."""
        in_memory_redis_client.data["expense_system:broken"] = "{not json"

        assert await store.get("broken") is None
        assert stats.errors == 1

    @pytest.mark.asyncio
    async def test_delete_exists_ttl(self, store):
        """Test delete, exists and ttl on one entry."""
        await store.set("bill:detail:1", {"id": 1}, 100)

        assert await store.exists("bill:detail:1") is True
        assert 0 < await store.ttl("bill:detail:1") <= 100
        assert await store.delete("bill:detail:1") is True
        assert await store.delete("bill:detail:1") is False
        assert await store.exists("bill:detail:1") is False
        assert await store.ttl("bill:detail:1") == -2


@pytest.mark.unit
class TestTags:
    """Test durable tag sets."""

    @pytest.mark.asyncio
    async def test_set_with_tags_registers_members(self, store, in_memory_redis_client):
        """Test that tags receive the fully-qualified key."""
        await store.set("bill:detail:42", {"id": 42}, 60, tags=["bill", "room"])

        assert in_memory_redis_client.sets["expense_system:tag:bill"] == {"expense_system:bill:detail:42"}
        assert await store.tag_members("room") == {"expense_system:bill:detail:42"}

    @pytest.mark.asyncio
    async def test_delete_by_tag(self, store):
        """Test that every member and the tag set are removed."""
        await store.set("bill:detail:1", 1, 60, tags=["bill"])
        await store.set("bill:detail:2", 2, 60, tags=["bill"])
        await store.set("user:profile:1", 3, 60, tags=["user"])

        assert await store.delete_by_tag("bill") == 2
        assert await store.get("bill:detail:1") is None
        assert await store.get("user:profile:1") == 3
        assert await store.tag_members("bill") == set()

    @pytest.mark.asyncio
    async def test_delete_by_tag_tolerates_expired_members(self, store, in_memory_redis_client):
        """Test that members already gone count as zero."""
        await store.set("bill:detail:1", 1, 60, tags=["bill"])
        await in_memory_redis_client.delete("expense_system:bill:detail:1")

        deleted, members = await store.delete_tag_members("bill")

        assert deleted == 0
        assert members == {"expense_system:bill:detail:1"}

    @pytest.mark.asyncio
    async def test_remove_tag_member(self, store):
        """Test that a single member can be dropped from a tag."""
        await store.set("bill:detail:1", 1, 60, tags=["bill"])
        await store.remove_tag_member("bill", "expense_system:bill:detail:1")
        assert await store.tag_members("bill") == set()


@pytest.mark.unit
class TestBatch:
    """Test batch reads and writes."""

    @pytest.mark.asyncio
    async def test_mset_then_mget(self, store):
        """Test that mget returns only the keys that exist."""
        written = await store.mset([CacheItem("a", 1, 60), CacheItem("b", 2, 60)])

        assert written == 2
        assert await store.mget(["a", "b", "c"]) == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_mget_empty(self, store):
        """Test that an empty key list makes no round-trip."""
        assert await store.mget([]) == {}


@pytest.mark.unit
class TestKeyspace:
    """Test SCAN-based administration."""

    @pytest.mark.asyncio
    async def test_scan_keys_relative(self, store):
        """Test that listed keys are relative and filtered by pattern."""
        await store.set("user:profile:1", 1, 60)
        await store.set("user:profile:2", 2, 60)
        await store.set("bill:detail:1", 3, 60)

        assert sorted(await store.scan_keys("user:*")) == ["user:profile:1", "user:profile:2"]
        assert len(await store.scan_keys("*", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_delete_pattern(self, store):
        """Test that only matching keys are deleted."""
        await store.set("user:profile:1", 1, 60)
        await store.set("user:rooms:1", 2, 60)
        await store.set("bill:detail:1", 3, 60)

        assert await store.delete_pattern("user:*") == 2
        assert await store.get("bill:detail:1") == 3

    @pytest.mark.asyncio
    async def test_bookkeeping_keys_hidden_from_pattern_operations(self, store, in_memory_redis_client):
        """Test that tag sets and locks are neither listed nor pattern-deleted."""
        await store.set("user:profile:1", 1, 60, tags=["user"])
        in_memory_redis_client.data["expense_system:lock:user:profile:1"] = "token"

        assert await store.scan_keys("*") == ["user:profile:1"]
        assert await store.delete_pattern("*") == 1
        assert await store.tag_members("user") == {"expense_system:user:profile:1"}
        assert "expense_system:lock:user:profile:1" in in_memory_redis_client.data

    @pytest.mark.asyncio
    async def test_clear_namespace_leaves_foreign_keys(self, store, in_memory_redis_client):
        """Test that clearing the namespace never touches other prefixes."""
        await store.set("user:profile:1", 1, 60, tags=["user"])
        in_memory_redis_client.data["other_app:key"] = "1"

        assert await store.clear_namespace() == 2  # entry + tag set
        assert in_memory_redis_client.data == {"other_app:key": "1"}


@pytest.mark.unit
class TestFailureContract:
    """Test that Redis failures degrade instead of raising."""

    @pytest.fixture
    def failing_store(self, codec, stats):
        return DistributedStore(CacheTestFactory.failing_redis_client(), codec, stats)

    @pytest.mark.asyncio
    async def test_every_operation_degrades(self, failing_store, stats):
        """Test the neutral result of each operation while Redis is down."""
        assert await failing_store.get("k") is None
        assert await failing_store.set("k", 1, 60) is False
        assert await failing_store.delete("k") is False
        assert await failing_store.exists("k") is False
        assert await failing_store.ttl("k") == -2
        assert await failing_store.mget(["a", "b"]) == {}
        assert await failing_store.delete_by_tag("bill") == 0
        assert await failing_store.scan_keys("*") == []
        assert await failing_store.delete_pattern("*") == 0

        assert stats.errors == 9


@pytest.mark.unit
class TestSerialization:
    """Test the JSON helpers."""

    def test_encode_non_string_keys(self):
        """Test that integer dict keys are accepted."""
        assert decode_value(encode_value({1: "a"})) == {"1": "a"}

    def test_encode_error_wrapped(self):
        """Test that unserializable values raise CacheSerializationError."""
        with pytest.raises(CacheSerializationError) as exc_info:
            encode_value({"when": object()})
        assert isinstance(exc_info.value.__cause__, orjson.JSONEncodeError)

    def test_decode_error_wrapped(self):
        """Test that invalid JSON raises CacheSerializationError."""
        with pytest.raises(CacheSerializationError, match="not valid JSON"):
            decode_value("{oops")
