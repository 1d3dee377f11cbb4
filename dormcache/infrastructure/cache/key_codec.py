"""
Cache key construction.

Keys handed to the cache facade are relative (``bill:detail:42``); the
distributed store qualifies them with the namespace prefix
(``expense_system:bill:detail:42``). Parameterized queries append a short
token derived from their option bag so equal options always share a key.
"""

from typing import Any

import orjson

from dormcache.core.config.constants import REDIS_LOCK_SEGMENT, REDIS_TAG_SEGMENT

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _rolling_hash(text: str) -> int:
    """31-multiplier string hash wrapped to a signed 32-bit integer."""
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 0x100000000
    return value


class KeyCodec:
    """
    Builds relative and fully-qualified cache keys.

    Usage:
        codec = KeyCodec("expense_system:")
        codec.build_key("bill:detail", 42)                 # "bill:detail:42"
        codec.build_key("room:bills", 7, codec.hash_options({"limit": 10}))
        codec.full_key("bill:detail:42")                   # "expense_system:bill:detail:42"
    """

    SEPARATOR = ":"

    def __init__(self, namespace: str = "expense_system:"):
        self._namespace = namespace

    @property
    def namespace(self) -> str:
        return self._namespace

    @classmethod
    def build_key(cls, prefix: str, identifier: Any, suffix: Any | None = None) -> str:
        """Join prefix, identifier and optional suffix with ``:``."""
        head = prefix[:-1] if prefix.endswith(cls.SEPARATOR) else prefix
        key = f"{head}{cls.SEPARATOR}{identifier}"
        if suffix is not None and suffix != "":
            key = f"{key}{cls.SEPARATOR}{suffix}"
        return key

    @staticmethod
    def hash_options(options: dict[str, Any] | None) -> str:
        """
        Reduce an option bag to a stable base36 token.

        Key order is irrelevant: the bag is serialized with sorted keys at
        every nesting level before hashing. Not cryptographic.
        """
        if not options:
            return "0"
        canonical = orjson.dumps(options, option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS)
        return _to_base36(abs(_rolling_hash(canonical.decode("utf-8"))))

    def full_key(self, key: str) -> str:
        """Qualify a relative key with the namespace (idempotent)."""
        if key.startswith(self._namespace):
            return key
        return f"{self._namespace}{key}"

    def strip_prefix(self, full_key: str) -> str:
        """Turn a fully-qualified key back into a relative one."""
        if full_key.startswith(self._namespace):
            return full_key[len(self._namespace):]
        return full_key

    def tag_key(self, tag: str) -> str:
        """Redis key of a tag's member set."""
        return f"{self._namespace}{REDIS_TAG_SEGMENT}{self.SEPARATOR}{tag}"

    def lock_key(self, key: str) -> str:
        """Redis key of the stampede lock protecting ``key``."""
        return f"{self._namespace}{REDIS_LOCK_SEGMENT}{self.SEPARATOR}{self.strip_prefix(key)}"

    def is_internal(self, key: str) -> bool:
        """True for tag sets and stampede locks, relative or qualified."""
        head = self.strip_prefix(key).split(self.SEPARATOR, 1)[0]
        return head in (REDIS_TAG_SEGMENT, REDIS_LOCK_SEGMENT)
