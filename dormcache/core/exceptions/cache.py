"""
Cache-Related Exceptions

All exceptions raised by the Redis transport and the cache layer. The cache
facade converts these into "proceed without cache" results; they only reach
callers that talk to the Redis client directly.
"""

from dormcache.core.exceptions.base import DormCacheError


class CacheError(DormCacheError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to Redis.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect host/port configuration
    - Authentication failure
    """
    pass


class CacheKeyError(CacheError):
    """
    Raised when a Redis command fails on a connected client.

    Common causes:
    - Operation timeout
    - Wrong type stored under the key
    - Memory limit exceeded
    """
    pass


class CacheSerializationError(CacheError):
    """Raised when a value cannot be encoded to or decoded from JSON."""
    pass
