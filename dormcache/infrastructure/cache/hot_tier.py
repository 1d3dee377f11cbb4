"""
Process-local hot tier.

A small bounded mirror of Redis entries whose keys match known hot
patterns (user lookups, room membership, bill detail). Each mirrored entry
carries its own short expiry and is never served after it, even when the
Redis copy is still valid.

Eviction is by insertion order: when the tier is full the oldest inserted
entry goes first, regardless of how recently it was read.
"""

import re
import time
from collections import OrderedDict
from collections.abc import Iterable
from typing import Any

from dormcache.core.config.constants import HOT_KEY_PATTERNS

MISSING: Any = object()


class LocalHotTier:
    """
    Bounded FIFO map of hot keys with per-entry expiry.

    Keys are relative cache keys. Methods are synchronous: they never
    await, so no interleaving can happen inside them on the event loop.
    """

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: int = 300,
        enabled: bool = True,
        promotion_threshold: int = 1,
        patterns: Iterable[re.Pattern] = HOT_KEY_PATTERNS,
    ):
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._enabled = enabled
        self._threshold = promotion_threshold
        self._patterns = tuple(patterns)
        self._entries: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._access_counts: dict[str, int] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def size(self) -> int:
        return len(self._entries)

    def should_promote(self, key: str) -> bool:
        """True when the key matches one of the hot patterns."""
        if not self._enabled:
            return False
        return any(pattern.search(key) for pattern in self._patterns)

    def record_access(self, key: str) -> bool:
        """
        Count a Redis hit on a hot key; True once the promotion threshold
        is reached.
        """
        if not self.should_promote(key):
            return False
        if self._threshold <= 1:
            return True

        count = self._access_counts.get(key, 0) + 1
        if count >= self._threshold:
            self._access_counts.pop(key, None)
            return True

        # Bounded like the entries themselves
        if key not in self._access_counts and len(self._access_counts) >= self._max_size * 10:
            self._access_counts.clear()
        self._access_counts[key] = count
        return False

    def get(self, key: str) -> Any:
        """Return the mirrored value, or MISSING when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return MISSING

        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return MISSING
        return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        Insert or overwrite; evicts the oldest entry first when full.

        The local expiry never exceeds the tier default, and never exceeds
        ``ttl`` when the caller knows the entry's remaining Redis lifetime.
        """
        if not self._enabled:
            return

        lifetime = min(ttl, self._default_ttl) if ttl and ttl > 0 else self._default_ttl
        expires_at = time.monotonic() + lifetime
        if key in self._entries:
            # Overwrite keeps the original insertion slot
            self._entries[key] = (value, expires_at)
            return

        while len(self._entries) >= self._max_size:
            self._entries.popitem(last=False)
        self._entries[key] = (value, expires_at)

    def evict(self, key: str) -> bool:
        self._access_counts.pop(key, None)
        return self._entries.pop(key, None) is not None

    def evict_many(self, keys: Iterable[str]) -> int:
        return sum(1 for key in keys if self.evict(key))

    def clear(self) -> None:
        self._entries.clear()
        self._access_counts.clear()

    def keys(self) -> list[str]:
        """Mirrored keys, oldest first."""
        return list(self._entries.keys())
