"""Application services built on the cache."""

from .cached_queries import CachedQueries, DataSource, build_warmup_datasets

__all__ = ["CachedQueries", "DataSource", "build_warmup_datasets"]
