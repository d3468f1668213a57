"""Core domain types for pagecache."""

from pagecache.core.content import (
    CachePurger,
    ContentSystem,
    NullPurger,
    StaticContentSystem,
)
from pagecache.core.elements import (
    Element,
    ElementQuery,
    ElementTypeRegistry,
    ElementTypeTraits,
)
from pagecache.core.site_uri import Site, SiteUri, normalize_uri

__all__ = [
    "CachePurger",
    "ContentSystem",
    "Element",
    "ElementQuery",
    "ElementTypeRegistry",
    "ElementTypeTraits",
    "NullPurger",
    "Site",
    "StaticContentSystem",
    "SiteUri",
    "normalize_uri",
]
