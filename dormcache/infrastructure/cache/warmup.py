"""
Cache Warmup Scheduler

Pre-populates the cache before real traffic arrives by replaying the same
``get_or_set``-backed reads the request path performs on a miss.

Flow:
    run() -> for each dataset in WARMUP_ORDER:
        list_records(limit) -> batches of WARMUP_BATCH_SIZE
            -> warm_record(record) per item (errors recorded, never raised)
            -> sleep WARMUP_BATCH_DELAY between batches

Only one run may be active per process; a second caller gets the current
stats back instead of starting another run.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from dormcache.core.config.constants import WARMUP_ORDER, Stage
from dormcache.core.config.settings import WarmupSettings, get_settings
from dormcache.core.exceptions import WarmupInProgressError
from dormcache.core.logging.logger import get_logger, log_stage
from dormcache.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_record_id(record: Any) -> Any:
    """``record["id"]`` for mappings, ``record.id`` otherwise."""
    if isinstance(record, Mapping):
        return record.get("id")
    return getattr(record, "id", None)


@dataclass
class WarmupSource:
    """
    One warmable dataset.

    Attributes:
        name: Dataset name (users, rooms, bills, stats)
        list_records: Returns up to ``limit`` records to warm
        warm_record: Populates every cache entry derived from one record
        record_id: Extracts the id used in error reports
    """

    name: str
    list_records: Callable[[int], Awaitable[Iterable[Any]]]
    warm_record: Callable[[Any], Awaitable[Any]]
    record_id: Callable[[Any], Any] = default_record_id


@dataclass
class WarmupStats:
    """Aggregate result of one warmup run."""

    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_ms: float | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)
    skipped_datasets: list[str] = field(default_factory=list)

    def record_error(self, kind: str, item_id: Any, message: str) -> None:
        self.errors.append({
            "type": kind,
            "id": item_id,
            "message": message,
            "timestamp": _utcnow().isoformat(),
        })

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for name in ("start_time", "end_time"):
            value = data[name]
            data[name] = value.isoformat() if value else None
        return data


class WarmupScheduler:
    """
    Single-flight batch job over a fixed set of datasets.

    Usage:
        scheduler = WarmupScheduler(build_warmup_datasets(queries), settings.warmup)
        stats = await scheduler.run()
        status = scheduler.get_warmup_status()
    """

    def __init__(
        self,
        sources: Iterable[WarmupSource],
        settings: WarmupSettings | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._sources = {source.name: source for source in sources}
        self._settings = settings or get_settings().warmup
        self._metrics = metrics or get_metrics_collector()
        self._running = False
        self._stats = WarmupStats()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> WarmupStats:
        return self._stats

    def get_warmup_status(self) -> dict[str, Any]:
        return {"is_running": self._running, "stats": self._stats.to_dict()}

    def ensure_not_running(self) -> None:
        """Raise WarmupInProgressError while a run is active."""
        if self._running:
            raise WarmupInProgressError(
                message="Cache warmup is already running",
                details={"started_at": self._stats.start_time.isoformat() if self._stats.start_time else None},
            )

    def _selected(self, name: str, force: bool) -> bool:
        if force:
            return True
        return self._settings.WARMUP_ENABLED and self._settings.dataset_enabled(name)

    async def run(self, force: bool = False, datasets: Iterable[str] | None = None) -> WarmupStats:
        """
        Warm every enabled dataset in order.

        Args:
            force: Warm datasets even when disabled in configuration
            datasets: Restrict the run to these dataset names

        Returns:
            WarmupStats: Aggregate result (never raises for item failures)
        """
        if self._running:
            logger.warning("Cache warmup already in progress, skipping", stage=Stage.WARMUP.value)
            return self._stats

        self._running = True
        self._stats = WarmupStats(start_time=_utcnow())
        wanted = set(datasets) if datasets is not None else None

        log_stage(logger, Stage.WARMUP.value, "Cache warmup started", force=force,
                  datasets=sorted(wanted) if wanted is not None else "all")
        try:
            for dataset in WARMUP_ORDER:
                name = dataset.value
                if name not in self._sources or (wanted is not None and name not in wanted):
                    continue
                # Registered but disabled in configuration
                if not self._selected(name, force):
                    self._stats.skipped_datasets.append(name)
                    log_stage(logger, Stage.WARMUP.value, "Dataset skipped", level="debug", dataset=name)
                    continue
                await self._warm_dataset(self._sources[name])
        finally:
            stats = self._stats
            stats.end_time = _utcnow()
            stats.duration_ms = round((stats.end_time - stats.start_time).total_seconds() * 1000, 2)
            self._running = False

        log_stage(
            logger, Stage.WARMUP.value, "Cache warmup finished",
            total=stats.total, success=stats.success, failed=stats.failed,
            skipped=stats.skipped, duration_ms=stats.duration_ms,
        )
        if stats.errors:
            logger.warning("Cache warmup finished with errors", stage=Stage.WARMUP.value, errors=len(stats.errors))
        return stats

    async def _warm_dataset(self, source: WarmupSource) -> None:
        limit = self._settings.dataset_limit(source.name)
        try:
            records = list(await source.list_records(limit))[:limit]
        except Exception as e:
            self._stats.record_error(source.name, None, str(e))
            logger.error("Warmup listing failed", stage=Stage.WARMUP.value, dataset=source.name, error=str(e))
            return

        batch_size = self._settings.WARMUP_BATCH_SIZE
        for start in range(0, len(records), batch_size):
            if start:
                await asyncio.sleep(self._settings.WARMUP_BATCH_DELAY)
            for record in records[start:start + batch_size]:
                await self._warm_item(source, record)

        log_stage(logger, Stage.WARMUP.value, "Dataset warmed", dataset=source.name, records=len(records))

    async def _warm_item(self, source: WarmupSource, record: Any) -> None:
        item_id = source.record_id(record)
        if item_id is None:
            self._stats.skipped += 1
            self._metrics.record_warmup_item(source.name, "skipped")
            return

        self._stats.total += 1
        try:
            await source.warm_record(record)
        except Exception as e:
            self._stats.failed += 1
            self._stats.record_error(source.name, item_id, str(e))
            self._metrics.record_warmup_item(source.name, "failed")
            logger.error("Warmup item failed", stage=Stage.WARMUP.value,
                         dataset=source.name, item_id=item_id, error=str(e))
            return

        self._stats.success += 1
        self._metrics.record_warmup_item(source.name, "success")
