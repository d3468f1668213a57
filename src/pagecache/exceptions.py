"""Exception hierarchy for pagecache.

Most failures inside the cache are logged and swallowed so that a broken
cache never breaks the page being served. These exceptions cover the few
cases where a collaborator or a configuration error has to be reported.
"""

from __future__ import annotations


class PageCacheError(Exception):
    """Base class for pagecache errors."""


class SiteNotFoundError(PageCacheError):
    """Raised by a content system when no site matches the request."""

    def __init__(self, site_id: int | None = None):
        self.site_id = site_id
        if site_id is None:
            super().__init__("No current site could be resolved")
        else:
            super().__init__(f"Site not found: {site_id}")


class UnsupportedStorageDriverError(PageCacheError, ValueError):
    """Raised when settings name a storage driver that does not exist."""

    def __init__(self, driver: str):
        self.driver = driver
        super().__init__(f"Unsupported storage_driver '{driver}'. Supported values: file.")
