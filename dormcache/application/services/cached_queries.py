"""
Cached Dataset Queries

Read-through wrappers that put the expense system's hot queries behind the
cache, plus the invalidation helpers write paths call after a mutation.

Every read goes through ``CacheService.get_or_set`` with the key, TTL and
tags for its category; the underlying ``DataSource`` is only consulted on a
miss and may be invoked more than once for the same key under concurrent
misses.
"""

from collections.abc import Mapping
from typing import Any, Protocol

from dormcache.core.config.constants import (
    WARMUP_ROOM_BILLS_LIMIT,
    CacheKeys,
    CacheTags,
    CacheTTL,
    WarmupDataset,
)
from dormcache.infrastructure.cache.cache_service import CacheService
from dormcache.infrastructure.cache.key_codec import KeyCodec
from dormcache.infrastructure.cache.warmup import WarmupSource, default_record_id


class DataSource(Protocol):
    """System-of-record queries the cache sits in front of."""

    async def get_user_by_id(self, user_id: Any) -> Any: ...

    async def get_user_rooms(self, user_id: Any) -> Any: ...

    async def get_room_by_id(self, room_id: Any) -> Any: ...

    async def get_room_users(self, room_id: Any) -> Any: ...

    async def get_room_bills(self, room_id: Any, options: Mapping[str, Any]) -> Any: ...

    async def get_bill_by_id(self, bill_id: Any) -> Any: ...

    async def get_room_stats(self, room_id: Any) -> Any: ...

    async def list_active_users(self, limit: int) -> list[Any]: ...

    async def list_active_rooms(self, limit: int) -> list[Any]: ...

    async def list_recent_bills(self, limit: int) -> list[Any]: ...


class CachedQueries:
    """
    Cache-aside access to users, rooms, bills and room statistics.

    Usage:
        queries = CachedQueries(cache, repository)
        bill = await queries.get_bill_by_id(42)
        await queries.clear_bill_cache(42, room_id=7)
    """

    def __init__(self, cache: CacheService, source: DataSource):
        self._cache = cache
        self._source = source

    @property
    def source(self) -> DataSource:
        return self._source

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_user_by_id(self, user_id: Any) -> Any:
        return await self._cache.get_or_set(
            KeyCodec.build_key(CacheKeys.USER_PROFILE, user_id),
            lambda: self._source.get_user_by_id(user_id),
            ttl=CacheTTL.USER_INFO,
            tags=[CacheTags.USER],
        )

    async def get_user_rooms(self, user_id: Any) -> Any:
        return await self._cache.get_or_set(
            KeyCodec.build_key(CacheKeys.USER_ROOMS, user_id),
            lambda: self._source.get_user_rooms(user_id),
            ttl=CacheTTL.USER_ROOMS,
            tags=[CacheTags.USER, CacheTags.ROOM],
        )

    async def get_room_by_id(self, room_id: Any) -> Any:
        return await self._cache.get_or_set(
            KeyCodec.build_key(CacheKeys.ROOM_DETAIL, room_id),
            lambda: self._source.get_room_by_id(room_id),
            ttl=CacheTTL.ROOM_USERS,
            tags=[CacheTags.ROOM],
        )

    async def get_room_users(self, room_id: Any) -> Any:
        return await self._cache.get_or_set(
            KeyCodec.build_key(CacheKeys.ROOM_USERS, room_id),
            lambda: self._source.get_room_users(room_id),
            ttl=CacheTTL.ROOM_USERS,
            tags=[CacheTags.ROOM, CacheTags.USER],
        )

    async def get_room_bills(self, room_id: Any, options: Mapping[str, Any] | None = None) -> Any:
        """Bill list for a room; each distinct option bag is cached separately."""
        options = dict(options or {})
        return await self._cache.get_or_set(
            KeyCodec.build_key(CacheKeys.ROOM_BILLS, room_id, KeyCodec.hash_options(options)),
            lambda: self._source.get_room_bills(room_id, options),
            ttl=CacheTTL.ROOM_BILLS,
            tags=[CacheTags.BILL, CacheTags.ROOM],
        )

    async def get_bill_by_id(self, bill_id: Any) -> Any:
        return await self._cache.get_or_set(
            KeyCodec.build_key(CacheKeys.BILL_DETAIL, bill_id),
            lambda: self._source.get_bill_by_id(bill_id),
            ttl=CacheTTL.BILL_DETAIL,
            tags=[CacheTags.BILL],
        )

    async def get_room_stats(self, room_id: Any) -> Any:
        return await self._cache.get_or_set(
            KeyCodec.build_key(CacheKeys.ROOM_STATS, room_id),
            lambda: self._source.get_room_stats(room_id),
            ttl=CacheTTL.BILL_STATS,
            tags=[CacheTags.STATS, CacheTags.ROOM],
        )

    # =========================================================================
    # Invalidation
    # =========================================================================

    async def _delete_keys(self, keys: list[str]) -> int:
        count = 0
        for key in keys:
            if await self._cache.delete(key):
                count += 1
        return count

    async def clear_user_cache(self, user_id: Any) -> int:
        """Drop a user's profile, room list and statistics."""
        return await self._delete_keys([
            KeyCodec.build_key(CacheKeys.USER_PROFILE, user_id),
            KeyCodec.build_key(CacheKeys.USER_ROOMS, user_id),
            KeyCodec.build_key(CacheKeys.USER_STATS, user_id),
        ])

    async def clear_room_cache(self, room_id: Any) -> int:
        """Drop a room's detail, membership and statistics, then every bill list."""
        count = await self._delete_keys([
            KeyCodec.build_key(CacheKeys.ROOM_DETAIL, room_id),
            KeyCodec.build_key(CacheKeys.ROOM_USERS, room_id),
            KeyCodec.build_key(CacheKeys.ROOM_MEMBERS, room_id),
            KeyCodec.build_key(CacheKeys.ROOM_STATS, room_id),
        ])
        await self._cache.delete_by_tag(CacheTags.BILL)
        return count

    async def clear_bill_cache(self, bill_id: Any, room_id: Any | None = None) -> int:
        """Drop a bill's detail and every bill list; also the owning room's cache when known."""
        count = await self._delete_keys([KeyCodec.build_key(CacheKeys.BILL_DETAIL, bill_id)])
        await self._cache.delete_by_tag(CacheTags.BILL)
        if room_id is not None:
            await self.clear_room_cache(room_id)
        return count


def build_warmup_datasets(queries: CachedQueries) -> list[WarmupSource]:
    """
    Warmup sources replaying the same cached reads the request path uses.

    users: profile + room list; rooms: detail + members + latest bills;
    bills: detail; stats: room statistics.
    """
    source = queries.source

    async def warm_user(record: Any) -> None:
        user_id = default_record_id(record)
        await queries.get_user_by_id(user_id)
        await queries.get_user_rooms(user_id)

    async def warm_room(record: Any) -> None:
        room_id = default_record_id(record)
        await queries.get_room_by_id(room_id)
        await queries.get_room_users(room_id)
        await queries.get_room_bills(room_id, {"limit": WARMUP_ROOM_BILLS_LIMIT})

    async def warm_bill(record: Any) -> None:
        await queries.get_bill_by_id(default_record_id(record))

    async def warm_stats(record: Any) -> None:
        await queries.get_room_stats(default_record_id(record))

    return [
        WarmupSource(WarmupDataset.USERS.value, source.list_active_users, warm_user),
        WarmupSource(WarmupDataset.ROOMS.value, source.list_active_rooms, warm_room),
        WarmupSource(WarmupDataset.BILLS.value, source.list_recent_bills, warm_bill),
        WarmupSource(WarmupDataset.STATS.value, source.list_active_rooms, warm_stats),
    ]
