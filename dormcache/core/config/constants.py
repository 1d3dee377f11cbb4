"""
System Constants and Enumerations

This module defines the static tables of the cache layer: default TTL per
data category, key prefixes, invalidation tags and the hot key patterns the
local tier mirrors.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for key layout and expiry policy
- Type-safe enums for stages and datasets
"""

import re
from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Cache processing stages used as the ``stage`` field of log events.

    Format: {SEQUENCE}_{DESCRIPTIVE_NAME}
    """

    INITIALIZATION = "0.0_INITIALIZATION"
    HOT_TIER_LOOKUP = "2.1_HOT_TIER_LOOKUP"
    STORE_LOOKUP = "2.2_STORE_LOOKUP"
    CACHE_WRITE = "2.3_CACHE_WRITE"
    INVALIDATION = "2.4_INVALIDATION"
    COMPUTE_ON_MISS = "2.5_COMPUTE_ON_MISS"
    BATCH = "2.6_BATCH"
    ADMIN = "A_CACHE_ADMIN"
    WARMUP = "W_CACHE_WARMUP"
    REDIS = "R_REDIS"
    METRICS = "M_METRICS_COLLECTION"


# ============================================================================
# Warmup Datasets
# ============================================================================


class WarmupDataset(str, Enum):
    """Datasets the warmup job knows about, in the order they are processed."""

    USERS = "users"
    ROOMS = "rooms"
    BILLS = "bills"
    STATS = "stats"


WARMUP_ORDER: tuple[WarmupDataset, ...] = (
    WarmupDataset.USERS,
    WarmupDataset.ROOMS,
    WarmupDataset.BILLS,
    WarmupDataset.STATS,
)

# ============================================================================
# Default TTL per data category (seconds)
# ============================================================================


class CacheTTL:
    """Default expiry for each cached data category."""

    USER_INFO = 1800
    USER_ROOMS = 1800
    ROOM_USERS = 1800
    ROOM_BILLS = 1800
    BILL_DETAIL = 1800
    BILL_STATS = 3600
    EXPENSE_TYPES = 7200
    SYSTEM_CONFIG = 86400
    NOTIFICATIONS = 600
    HOT_DATA = 300


# ============================================================================
# Cache Key Prefixes (relative, namespace prefix is added by the store)
# ============================================================================


class CacheKeys:
    """Key prefixes per category; combine with KeyCodec.build_key."""

    USER_PROFILE = "user:profile"
    USER_USERNAME = "user:username"
    USER_EMAIL = "user:email"
    USER_ROOMS = "user:rooms"
    USER_STATS = "stats:user"

    ROOM_DETAIL = "room:detail"
    ROOM_USERS = "room:users"
    ROOM_MEMBERS = "room:members"
    ROOM_BILLS = "room:bills"
    ROOM_STATS = "stats:room"

    BILL_DETAIL = "bill:detail"

    EXPENSE_TYPES = "expense:types"
    SYSTEM_CONFIG = "system:config"
    NOTIFICATIONS = "notification:list"


# ============================================================================
# Invalidation Tags
# ============================================================================


class CacheTags:
    """Tags grouping keys for bulk invalidation."""

    USER = "user"
    ROOM = "room"
    BILL = "bill"
    EXPENSE = "expense"
    STATS = "stats"
    SYSTEM = "system"
    NOTIFICATION = "notification"


# ============================================================================
# Hot Key Patterns
# ============================================================================

HOT_KEY_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"^user:profile:"),
    re.compile(r"^user:username:"),
    re.compile(r"^user:email:"),
    re.compile(r"^user:rooms:"),
    re.compile(r"^room:users:"),
    re.compile(r"^room:members:"),
    re.compile(r"^bill:detail:"),
)

# ============================================================================
# Redis Key Layout
# ============================================================================

REDIS_TAG_SEGMENT = "tag"
REDIS_LOCK_SEGMENT = "lock"

# SCAN page size for key listing and pattern deletion
SCAN_BATCH_SIZE = 200
KEY_LISTING_MAX = 1000

# Room bill lists cached during warmup
WARMUP_ROOM_BILLS_LIMIT = 10

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_THREAD_ID = "X-Thread-ID"
