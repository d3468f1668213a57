"""Cache and invalidation services."""

from pagecache.services.caching import CacheService
from pagecache.services.invalidation import InvalidationBatch, InvalidationService

__all__ = [
    "CacheService",
    "InvalidationBatch",
    "InvalidationService",
]
