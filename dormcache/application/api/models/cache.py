"""
Cache Admin API Models

Request and response bodies for the /cache administration routes. Response
models document the payload shapes in the OpenAPI schema; every field maps
one-to-one onto what CacheService and WarmupScheduler return.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from dormcache.core.config.constants import KEY_LISTING_MAX, WarmupDataset

# ============================================================================
# STATISTICS
# ============================================================================


class CacheStatsResponse(BaseModel):
    """Counters since the last reset plus current tier occupancy."""

    hits: int = Field(..., ge=0, description="Reads served by either tier")
    misses: int = Field(..., ge=0, description="Reads that found nothing")
    sets: int = Field(..., ge=0, description="Successful writes")
    deletes: int = Field(..., ge=0, description="Entries removed")
    errors: int = Field(..., ge=0, description="Failed cache operations")
    hit_rate: float = Field(..., ge=0, le=1, description="hits / (hits + misses), 0 with no traffic")
    hot_tier_size: int = Field(..., ge=0, description="Entries mirrored in process memory")
    hot_tier_max_size: int = Field(..., ge=0, description="Hot tier capacity")
    tag_count: int = Field(..., ge=0, description="Tags known to the in-process mirror")
    redis_connected: bool = Field(..., description="Whether the Redis pool is connected")
    timestamp: str = Field(..., description="ISO 8601 time the snapshot was taken")


class HitRateResponse(BaseModel):
    hit_rate: float = Field(..., ge=0, le=1, description="hits / (hits + misses), 0 with no traffic")
    hits: int = Field(..., ge=0)
    misses: int = Field(..., ge=0)


class SuccessResponse(BaseModel):
    success: bool = True


# ============================================================================
# KEYS
# ============================================================================


class KeyInspectionResponse(BaseModel):
    """Single-key view; ``ttl`` is -1 without expiry and -2 when absent."""

    key: str
    exists: bool
    value: Any = None
    ttl: int


class SetKeyRequest(BaseModel):
    """Body of POST /cache/key."""

    key: str = Field(..., min_length=1, description="Relative cache key, e.g. bill:detail:42")
    value: Any = Field(..., description="Any JSON value")
    ttl: int | None = Field(default=None, description="Seconds; omitted uses the default, <= 0 never expires")
    tags: list[str] = Field(default_factory=list, description="Invalidation tags")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("key must not be blank")
        return v.strip()

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        if any(not tag.strip() for tag in v):
            raise ValueError("tags must not be blank")
        return [tag.strip() for tag in v]


class SetKeyResponse(SuccessResponse):
    key: str


class DeleteResponse(SuccessResponse):
    deleted: int = Field(..., ge=0, description="Entries removed")


class KeyListResponse(BaseModel):
    pattern: str
    count: int = Field(..., ge=0, le=KEY_LISTING_MAX)
    keys: list[str]


class HotKeysResponse(BaseModel):
    count: int = Field(..., ge=0)
    keys: list[str] = Field(..., description="Mirrored keys, oldest first")


# ============================================================================
# WARMUP
# ============================================================================


class WarmupRequest(BaseModel):
    """Body of POST /cache/warmup."""

    force: bool = Field(default=False, description="Warm datasets disabled in configuration")
    datasets: list[WarmupDataset] | None = Field(
        default=None, description="Restrict the run to these datasets"
    )


class WarmupErrorItem(BaseModel):
    type: str
    id: Any = None
    message: str
    timestamp: str


class WarmupStatsResponse(BaseModel):
    total: int = Field(..., ge=0)
    success: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    start_time: str | None = None
    end_time: str | None = None
    duration_ms: float | None = None
    errors: list[WarmupErrorItem] = Field(default_factory=list)
    skipped_datasets: list[str] = Field(default_factory=list)


class WarmupStatusResponse(BaseModel):
    is_running: bool
    stats: WarmupStatsResponse
