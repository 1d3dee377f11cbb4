#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Prometheus counters and gauges for the cache layer:
- Hits and misses by tier (hot / store)
- Writes, deletions and errors by operation
- Warmup items processed per dataset and outcome
- Hot tier occupancy

Architectural Decision: prometheus-client for industry-standard metrics
- Scraped from GET /cache/metrics
- In-process StatsRecorder counters stay the source for /cache/stats;
  these series are cumulative and never reset by the admin API
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Info,
    generate_latest,
)

from dormcache.core.config.settings import get_settings
from dormcache.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

CACHE_HITS = Counter(
    'dormcache_hits_total',
    'Total cache hits',
    ['tier']  # hot or store
)

CACHE_MISSES = Counter(
    'dormcache_misses_total',
    'Total cache misses'
)

CACHE_SETS = Counter(
    'dormcache_sets_total',
    'Total successful cache writes'
)

CACHE_DELETES = Counter(
    'dormcache_deletes_total',
    'Total cache entries removed'
)

CACHE_ERRORS = Counter(
    'dormcache_errors_total',
    'Total cache errors by operation',
    ['operation']
)

HOT_TIER_SIZE = Gauge(
    'dormcache_hot_tier_entries',
    'Entries currently mirrored in the hot tier'
)

WARMUP_ITEMS = Counter(
    'dormcache_warmup_items_total',
    'Warmup items processed',
    ['dataset', 'status']  # success, failed
)

HTTP_ERRORS = Counter(
    'dormcache_http_errors_total',
    'Unhandled errors raised while serving requests',
    ['error_type', 'component']
)

APP_INFO = Info(
    'dormcache_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_cache_hit("hot")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        """Initialize metrics collector."""
        settings = get_settings()
        APP_INFO.info({
            'version': settings.app.APP_VERSION,
            'environment': settings.app.ENVIRONMENT,
            'app_name': settings.app.APP_NAME
        })
        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_hit(self, tier: str) -> None:
        """Record cache hit."""
        CACHE_HITS.labels(tier=tier).inc()

    def record_cache_miss(self) -> None:
        """Record cache miss."""
        CACHE_MISSES.inc()

    def record_cache_set(self) -> None:
        """Record a successful write."""
        CACHE_SETS.inc()

    def record_cache_delete(self, count: int = 1) -> None:
        """Record removed entries."""
        if count > 0:
            CACHE_DELETES.inc(count)

    def record_cache_error(self, operation: str) -> None:
        """Record a failed cache operation."""
        CACHE_ERRORS.labels(operation=operation).inc()

    def set_hot_tier_size(self, size: int) -> None:
        """Set hot tier occupancy."""
        HOT_TIER_SIZE.set(size)

    # =========================================================================
    # Warmup Metrics
    # =========================================================================

    def record_warmup_item(self, dataset: str, status: str) -> None:
        """Record one warmed record."""
        WARMUP_ITEMS.labels(dataset=dataset, status=status).inc()

    # =========================================================================
    # Error Metrics
    # =========================================================================

    def record_error(self, error_type: str, component: str) -> None:
        """Record an error that escaped request handling."""
        HTTP_ERRORS.labels(error_type=error_type, component=component).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
