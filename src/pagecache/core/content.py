"""Interfaces the cache consumes from its host content system."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pagecache.core.elements import Element
from pagecache.core.site_uri import Site
from pagecache.exceptions import SiteNotFoundError


@runtime_checkable
class ContentSystem(Protocol):
    """Source of sites and elements.

    ``current_site`` raises ``SiteNotFoundError`` when the active request
    cannot be matched to a site. ``element_by_id`` and ``site_by_id``
    return None for missing records.
    """

    def current_site(self) -> Site: ...

    def all_sites(self) -> list[Site]: ...

    def site_by_id(self, site_id: int) -> Site | None: ...

    async def element_by_id(self, element_id: int) -> Element | None: ...

    def all_element_types(self) -> list[str]: ...

    async def elements_of_type(self, element_type: str, site_id: int) -> list[Element]: ...


@runtime_checkable
class CachePurger(Protocol):
    """External cache layer (reverse proxy, CDN) notified of stale pages."""

    async def purge_all(self) -> None: ...

    async def purge_urls(self, urls: list[str]) -> None: ...


class NullPurger:
    """Purger used when no external cache layer is configured."""

    async def purge_all(self) -> None:
        return None

    async def purge_urls(self, urls: list[str]) -> None:
        return None


class StaticContentSystem:
    """Content system with a fixed list of sites and no elements.

    Used by the command line when no host content system is configured:
    clearing, garbage collection and the utility report only need sites.
    """

    def __init__(self, sites: list[Site]):
        self._sites = {site.id: site for site in sites}

    def current_site(self) -> Site:
        if not self._sites:
            raise SiteNotFoundError()
        return next(iter(self._sites.values()))

    def all_sites(self) -> list[Site]:
        return list(self._sites.values())

    def site_by_id(self, site_id: int) -> Site | None:
        return self._sites.get(site_id)

    async def element_by_id(self, element_id: int) -> Element | None:
        return None

    def all_element_types(self) -> list[str]:
        return []

    async def elements_of_type(self, element_type: str, site_id: int) -> list[Element]:
        return []
