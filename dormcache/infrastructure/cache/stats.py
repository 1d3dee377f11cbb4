"""
Cache statistics.

StatsRecorder owns the resettable counters reported by ``GET /cache/stats``
and mirrors every increment into the cumulative Prometheus series.
"""

from dataclasses import asdict, dataclass
from typing import Any

from dormcache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time copy of the counters."""

    hits: int
    misses: int
    sets: int
    deletes: int
    errors: int
    hit_rate: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class StatsRecorder:
    """
    In-memory cache counters.

    ``hit_rate`` is derived on read: hits / (hits + misses), or 0.0 when the
    cache has seen no reads.
    """

    def __init__(self, metrics: MetricsCollector | None = None):
        self._metrics = metrics or get_metrics_collector()
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.deletes = 0
        self.errors = 0

    def record_hit(self, tier: str) -> None:
        self.hits += 1
        self._metrics.record_cache_hit(tier)

    def record_miss(self) -> None:
        self.misses += 1
        self._metrics.record_cache_miss()

    def record_set(self) -> None:
        self.sets += 1
        self._metrics.record_cache_set()

    def record_delete(self, count: int = 1) -> None:
        if count <= 0:
            return
        self.deletes += count
        self._metrics.record_cache_delete(count)

    def record_error(self, operation: str) -> None:
        self.errors += 1
        self._metrics.record_cache_error(operation)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total, 4) if total > 0 else 0.0

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            hits=self.hits,
            misses=self.misses,
            sets=self.sets,
            deletes=self.deletes,
            errors=self.errors,
            hit_rate=self.hit_rate,
        )

    def reset(self) -> None:
        """Zero every counter (administrative action only)."""
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.deletes = 0
        self.errors = 0
