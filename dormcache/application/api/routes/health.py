"""
Health Check Routes

GET /health reports the service and both cache tiers. A Redis outage makes
the report "degraded" but still answers 200: the cache is an accelerator
and the service keeps working without it.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from dormcache.application.api.dependencies import CacheServiceDep, SettingsDep

router = APIRouter(prefix="/health", tags=["Health"])


class HealthResponse(BaseModel):
    """Standard health check response model."""

    status: str  # "healthy" or "degraded"
    timestamp: str  # ISO 8601
    version: str
    components: dict | None = None


@router.get("", response_model=HealthResponse)
async def health_check(cache: CacheServiceDep, settings: SettingsDep):
    report = await cache.health_check()
    return HealthResponse(
        status=report["status"],
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        version=settings.app.APP_VERSION,
        components={"hot_tier": report["hot_tier"], "redis": report["redis"]},
    )


@router.get("/live")
async def liveness_probe():
    """Process is up; dependencies are not checked."""
    return {"status": "alive"}
