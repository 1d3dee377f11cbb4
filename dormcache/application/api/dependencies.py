"""
FastAPI Dependency Injection

The cache service and warmup scheduler are built once in the application
lifespan and stored on ``app.state``; route handlers receive them through
the ``Annotated`` aliases below instead of reaching for module globals.

Example:
    @router.get("/stats")
    async def stats(cache: CacheServiceDep):
        return cache.get_stats()

Tests can swap either object with ``app.dependency_overrides`` or by
assigning ``app.state.cache_service`` directly.
"""

from typing import Annotated

from fastapi import Depends, Request

from dormcache.core.config.settings import Settings, get_settings
from dormcache.core.exceptions import ConfigurationError
from dormcache.infrastructure.cache.cache_service import CacheService
from dormcache.infrastructure.cache.warmup import WarmupScheduler
from dormcache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_cache_service(request: Request) -> CacheService:
    """
    Retrieve the CacheService built during startup.

    Raises:
        ConfigurationError: If the lifespan did not run
    """
    cache = getattr(request.app.state, "cache_service", None)
    if cache is None:
        raise ConfigurationError(
            message="Cache service not initialized",
            details={"hint": "application lifespan startup did not complete"},
        )
    return cache


def get_warmup_scheduler(request: Request) -> WarmupScheduler:
    """Retrieve the WarmupScheduler built during startup."""
    scheduler = getattr(request.app.state, "warmup_scheduler", None)
    if scheduler is None:
        raise ConfigurationError(
            message="Warmup scheduler not initialized",
            details={"hint": "application lifespan startup did not complete"},
        )
    return scheduler


# ============================================================================
# TYPE ALIASES FOR CLEANER ROUTE SIGNATURES
# ============================================================================

CacheServiceDep = Annotated[CacheService, Depends(get_cache_service)]

WarmupDep = Annotated[WarmupScheduler, Depends(get_warmup_scheduler)]

SettingsDep = Annotated[Settings, Depends(get_settings)]

MetricsDep = Annotated[MetricsCollector, Depends(get_metrics_collector)]
