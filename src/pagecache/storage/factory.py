"""Cache storage factory for pagecache."""

from __future__ import annotations

from pagecache.config import Settings
from pagecache.exceptions import UnsupportedStorageDriverError
from pagecache.storage.base import CacheStorage, SiteLookup
from pagecache.storage.file import FileCacheStorage


def create_cache_storage(settings: Settings, sites: SiteLookup) -> CacheStorage:
    """Return the CacheStorage configured by settings."""
    driver = settings.storage_driver.lower()
    if driver == "file":
        return FileCacheStorage(
            folder_path=settings.cache_folder_path,
            sites=sites,
            create_gzip_files=settings.create_gzip_files,
        )
    raise UnsupportedStorageDriverError(settings.storage_driver)
