"""
Configuration Module

Centralized, type-safe configuration for the dormitory expense cache service.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: TTL table, key prefixes, tags, hot key patterns and enums

Usage:
------
```python
from dormcache.core.config import get_settings
from dormcache.core.config.constants import CacheKeys, CacheTags, CacheTTL

settings = get_settings()
prefix = settings.cache.CACHE_KEY_PREFIX

ttl = CacheTTL.BILL_DETAIL      # 1800
tag = CacheTags.BILL            # "bill"
```

Environment Variables:
---------------------
```bash
REDIS_HOST=localhost
REDIS_PORT=6379
CACHE_KEY_PREFIX=expense_system:
HOT_TIER_MAX_SIZE=100
WARMUP_ON_STARTUP=true
WARMUP_BILLS_LIMIT=2000
```
"""

from dormcache.core.config.settings import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings"]
