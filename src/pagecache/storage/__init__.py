"""Page cache storage drivers.

A storage driver is a plain key/value store for rendered pages addressed
by SiteUri. It knows nothing about invalidation: deciding what to delete
is the job of the invalidation service.
"""

from pagecache.storage.base import CacheStorage, SiteCacheInfo, SiteLookup
from pagecache.storage.factory import create_cache_storage
from pagecache.storage.file import FileCacheStorage

__all__ = [
    "CacheStorage",
    "FileCacheStorage",
    "SiteCacheInfo",
    "SiteLookup",
    "create_cache_storage",
]
