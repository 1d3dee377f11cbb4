"""
Warmup Exceptions

Per-item warmup failures are never raised out of a run; they are recorded in
the job's error list. These exceptions cover the job as a whole.
"""

from dormcache.core.exceptions.base import DormCacheError


class WarmupError(DormCacheError):
    """Base exception for cache warmup errors."""
    pass


class WarmupInProgressError(WarmupError):
    """Raised when a caller requires an idle scheduler but a run is active."""
    pass
