"""Base cache storage interface.

Defines the abstract interface for page cache storage backends.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from pagecache.core.site_uri import Site, SiteUri


class SiteLookup(Protocol):
    """Subset of the content system the storage needs to address sites."""

    def site_by_id(self, site_id: int) -> Site | None: ...

    def all_sites(self) -> list[Site]: ...


@dataclass
class SiteCacheInfo:
    """Operator-facing summary of one site's cached pages."""

    site_id: int
    name: str
    path: str
    count: int = 0


class CacheStorage(ABC):
    """Abstract base class for page cache storage backends.

    Implementations must never raise for a missing key and must not let
    I/O failures escape ``save`` or ``delete_all``: a failed cache write
    may not break the response that is being cached.
    """

    @abstractmethod
    async def get(self, site_uri: SiteUri) -> bytes:
        """Return the stored page, or empty bytes if it is not cached."""
        ...

    @abstractmethod
    async def save(self, site_uri: SiteUri, value: bytes) -> None:
        """Store rendered output for a page."""
        ...

    @abstractmethod
    async def delete_uris(self, site_uris: Iterable[SiteUri]) -> None:
        """Delete the stored pages for the given keys, if present."""
        ...

    @abstractmethod
    async def delete_all(self) -> None:
        """Delete every stored page."""
        ...

    @abstractmethod
    async def utility_info(self) -> list[SiteCacheInfo]:
        """Per-site storage location and cached page count."""
        ...
