"""
Cache Administration Routes

Operational endpoints consumed by the admin panel: statistics, single-key
inspection and edits, tag / pattern / namespace invalidation, warmup
control, key listing and Prometheus metrics.

Cache-layer failures never surface here as 5xx: the service degrades them
to misses and zero counts. Anything else unexpected is logged and wrapped
as an HTTP 500.

SECURITY:
    Authentication and role checks belong to the gateway in front of this
    service; ``verify_admin_access`` is the hook for them.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from dormcache.application.api.dependencies import CacheServiceDep, MetricsDep, WarmupDep
from dormcache.application.api.models.cache import (
    CacheStatsResponse,
    DeleteResponse,
    HitRateResponse,
    HotKeysResponse,
    KeyInspectionResponse,
    KeyListResponse,
    SetKeyRequest,
    SetKeyResponse,
    SuccessResponse,
    WarmupRequest,
    WarmupStatsResponse,
    WarmupStatusResponse,
)
from dormcache.core.config.constants import KEY_LISTING_MAX, Stage
from dormcache.core.logging.logger import get_logger

logger = get_logger(__name__)

# ============================================================================
# ROUTER SETUP
# ============================================================================

router = APIRouter(prefix="/cache", tags=["Cache"])


async def verify_admin_access() -> None:
    """Admin authorization hook; access control is enforced upstream."""


def _failed(operation: str, error: Exception) -> HTTPException:
    logger.error(f"{operation}_failed", stage=Stage.ADMIN.value, error=str(error), error_type=type(error).__name__)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {operation.replace('_', ' ')}",
    )


# ============================================================================
# STATISTICS
# ============================================================================


@router.get(
    "/stats",
    response_model=CacheStatsResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def get_cache_stats(cache: CacheServiceDep):
    """Hit / miss / write counters plus hot tier occupancy and tag count."""
    return cache.get_stats()


@router.get(
    "/hit-rate",
    response_model=HitRateResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def get_cache_hit_rate(cache: CacheServiceDep):
    stats = cache.get_stats()
    return HitRateResponse(hit_rate=stats["hit_rate"], hits=stats["hits"], misses=stats["misses"])


@router.post(
    "/stats/reset",
    response_model=SuccessResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def reset_cache_stats(cache: CacheServiceDep):
    cache.reset_stats()
    return SuccessResponse()


@router.get("/metrics")
async def get_prometheus_metrics(metrics: MetricsDep):
    """Prometheus text exposition for scraping."""
    return Response(content=metrics.get_prometheus_metrics(), media_type=metrics.get_content_type())


# ============================================================================
# KEYS
# ============================================================================


@router.get(
    "/keys",
    response_model=KeyListResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def list_cache_keys(
    cache: CacheServiceDep,
    pattern: str = Query(default="*", min_length=1, description="Glob over relative keys"),
    limit: int = Query(default=100, ge=1, le=KEY_LISTING_MAX, description="Maximum keys returned"),
):
    """Best-effort key listing via cursor-based SCAN."""
    try:
        keys = await cache.list_keys(pattern, limit)
    except Exception as e:
        raise _failed("list_cache_keys", e)
    return KeyListResponse(pattern=pattern, count=len(keys), keys=keys)


@router.get(
    "/hot-keys",
    response_model=HotKeysResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def list_hot_keys(cache: CacheServiceDep):
    keys = cache.hot_keys()
    return HotKeysResponse(count=len(keys), keys=keys)


@router.get(
    "/key/{key:path}",
    response_model=KeyInspectionResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def get_cache_key(key: str, cache: CacheServiceDep):
    """Value and remaining TTL of one key; an unknown key is not an error."""
    try:
        return await cache.inspect_key(key)
    except Exception as e:
        raise _failed("get_cache_key", e)


@router.post(
    "/key",
    response_model=SetKeyResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def set_cache_key(body: SetKeyRequest, cache: CacheServiceDep):
    try:
        stored = await cache.set(body.key, body.value, body.ttl, body.tags)
    except Exception as e:
        raise _failed("set_cache_key", e)

    logger.info("cache_key_set", stage=Stage.ADMIN.value, key=body.key, stored=stored)
    return SetKeyResponse(success=stored, key=body.key)


@router.delete(
    "/key/{key:path}",
    response_model=DeleteResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def delete_cache_key(key: str, cache: CacheServiceDep):
    try:
        removed = await cache.delete(key)
    except Exception as e:
        raise _failed("delete_cache_key", e)

    logger.info("cache_key_deleted", stage=Stage.ADMIN.value, key=key, removed=removed)
    return DeleteResponse(deleted=1 if removed else 0)


# ============================================================================
# BULK INVALIDATION
# ============================================================================


@router.delete(
    "/tag/{tag}",
    response_model=DeleteResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def delete_cache_tag(tag: str, cache: CacheServiceDep):
    try:
        deleted = await cache.delete_by_tag(tag)
    except Exception as e:
        raise _failed("delete_cache_tag", e)

    logger.info("cache_tag_invalidated", stage=Stage.ADMIN.value, tag=tag, deleted=deleted)
    return DeleteResponse(deleted=deleted)


@router.delete(
    "/pattern/{pattern:path}",
    response_model=DeleteResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def delete_cache_pattern(pattern: str, cache: CacheServiceDep):
    try:
        deleted = await cache.delete_pattern(pattern)
    except Exception as e:
        raise _failed("delete_cache_pattern", e)

    logger.info("cache_pattern_deleted", stage=Stage.ADMIN.value, pattern=pattern, deleted=deleted)
    return DeleteResponse(deleted=deleted)


@router.delete(
    "/all",
    response_model=DeleteResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def clear_cache(cache: CacheServiceDep):
    try:
        deleted = await cache.clear_all()
    except Exception as e:
        raise _failed("clear_cache", e)
    return DeleteResponse(deleted=deleted)


# ============================================================================
# WARMUP
# ============================================================================


@router.post(
    "/warmup",
    response_model=WarmupStatsResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def trigger_warmup(scheduler: WarmupDep, body: WarmupRequest | None = None):
    """
    Run the warmup job and return its aggregate stats.

    Responds 409 while another run is in progress.
    """
    body = body or WarmupRequest()
    scheduler.ensure_not_running()

    datasets = [d.value for d in body.datasets] if body.datasets is not None else None
    stats = await scheduler.run(force=body.force, datasets=datasets)
    return stats.to_dict()


@router.get(
    "/warmup/status",
    response_model=WarmupStatusResponse,
    dependencies=[Depends(verify_admin_access)],
)
async def get_warmup_status(scheduler: WarmupDep):
    return scheduler.get_warmup_status()
