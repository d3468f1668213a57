"""Cache key types: sites and normalized site URIs.

A cached page is identified by the site it belongs to and the URI relative
to that site's base URL. URIs are stored without leading or trailing
slashes so that ``/blog/`` and ``blog`` address the same page.
"""

from __future__ import annotations

from dataclasses import dataclass


def normalize_uri(uri: str) -> str:
    """Trim surrounding slashes from a URI."""
    return uri.strip("/")


@dataclass(frozen=True)
class Site:
    """A site served by the content system."""

    id: int
    name: str
    base_url: str

    @property
    def trimmed_base_url(self) -> str:
        return self.base_url.strip("/")


@dataclass(frozen=True)
class SiteUri:
    """Canonical cache key: one cached page per (site_id, uri)."""

    site_id: int
    uri: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "uri", normalize_uri(self.uri))

    def url(self, site: Site) -> str:
        """Absolute URL of this page on the given site."""
        base_url = site.trimmed_base_url
        if not self.uri:
            return f"{base_url}/"
        return f"{base_url}/{self.uri}"
