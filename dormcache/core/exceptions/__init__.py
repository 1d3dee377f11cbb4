"""
Exception Module

Structured exception hierarchy for the cache service.

Module Structure:
-----------------
- **base.py**: DormCacheError base class + ConfigurationError
- **cache.py**: Redis and cache exceptions
- **warmup.py**: Warmup job exceptions

Usage:
------
```python
from dormcache.core.exceptions import CacheConnectionError, WarmupInProgressError
```
"""

# Base exception
from dormcache.core.exceptions.base import ConfigurationError, DormCacheError

# Cache exceptions
from dormcache.core.exceptions.cache import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
)

# Warmup exceptions
from dormcache.core.exceptions.warmup import WarmupError, WarmupInProgressError

__all__ = [
    # Base
    "DormCacheError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    "CacheSerializationError",
    # Warmup
    "WarmupError",
    "WarmupInProgressError",
]
