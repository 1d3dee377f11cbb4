"""
Tag membership bookkeeping.

Tags live in two places: a durable Redis set per tag (survives restarts,
shared by every process) and an in-process mirror used to clean up tags
when a single key is deleted. The mirror only knows tags registered by this
process; after a restart, ``forget_key`` cannot reach durable sets it never
saw, and those stale members linger until the tag is invalidated.
"""

from collections import defaultdict

from dormcache.infrastructure.cache.distributed_store import DistributedStore
from dormcache.infrastructure.cache.hot_tier import LocalHotTier
from dormcache.infrastructure.cache.key_codec import KeyCodec


class TagIndex:
    """Best-effort tag -> {full_key} index over the distributed store."""

    def __init__(self, store: DistributedStore, hot_tier: LocalHotTier, codec: KeyCodec):
        self._store = store
        self._hot_tier = hot_tier
        self._codec = codec
        self._mirror: defaultdict[str, set[str]] = defaultdict(set)

    @property
    def tag_count(self) -> int:
        return len(self._mirror)

    def tags_for(self, full_key: str) -> list[str]:
        return [tag for tag, members in self._mirror.items() if full_key in members]

    def members(self, tag: str) -> set[str]:
        """Mirrored members of a tag (copy)."""
        return set(self._mirror.get(tag, ()))

    async def register(self, tag: str, full_key: str) -> bool:
        """Record membership locally and in the durable tag set."""
        self._mirror[tag].add(full_key)
        return await self._store.add_tag_member(tag, full_key)

    async def forget(self, tag: str, full_key: str) -> None:
        """Drop one key from one tag."""
        members = self._mirror.get(tag)
        if members is not None:
            members.discard(full_key)
            if not members:
                del self._mirror[tag]
        await self._store.remove_tag_member(tag, full_key)

    async def forget_key(self, full_key: str) -> list[str]:
        """Drop a key from every mirrored tag; returns the tags touched."""
        tags = self.tags_for(full_key)
        for tag in tags:
            await self.forget(tag, full_key)
        return tags

    async def invalidate(self, tag: str) -> int:
        """
        Delete every entry under ``tag`` and evict them from the hot tier.

        Members already gone from Redis (expired naturally) are tolerated;
        they are removed with the tag set and count as 0.
        """
        deleted, durable_members = await self._store.delete_tag_members(tag)
        affected = durable_members | self._mirror.pop(tag, set())

        self._hot_tier.evict_many(self._codec.strip_prefix(k) for k in affected)
        for other in self._mirror.values():
            other.difference_update(affected)
        for empty in [t for t, members in self._mirror.items() if not members]:
            del self._mirror[empty]
        return deleted

    def clear(self) -> None:
        self._mirror.clear()
