"""Content elements and the element type trait table.

Elements are the content entities a cached page depends on. The cache
never inspects element classes at runtime; every element carries a type
name, and the behaviour of that type is looked up in an
``ElementTypeRegistry`` populated once at startup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ElementTypeTraits:
    """Capabilities of one element type.

    Attributes:
        name: Element type name (e.g. "entry", "globalset")
        has_uris: Elements of this type have their own URLs
        cacheable: Changes to elements of this type invalidate cached pages
        is_global: Install-wide singleton loaded on every request;
            a change clears the entire cache
    """

    name: str
    has_uris: bool = False
    cacheable: bool = True
    is_global: bool = False


@dataclass
class Element:
    """A content entity as seen by the cache."""

    id: int
    type: str
    site_id: int | None = None
    uri: str | None = None
    url: str | None = None
    post_date: datetime | None = None
    expiry_date: datetime | None = None

    def next_expiry(self, now: datetime) -> datetime | None:
        """Return the future date at which this element goes live or expires.

        A future post date takes precedence over a future expiry date.
        """
        if self.post_date is not None and self.post_date > now:
            return self.post_date
        if self.expiry_date is not None and self.expiry_date > now:
            return self.expiry_date
        return None


@dataclass
class ElementQuery:
    """A query over elements of one type that a rendered page executed.

    Pages that list elements (e.g. "the latest ten entries") depend on
    elements that did not exist when the page was cached. Recording the
    query lets a change to any element of the type invalidate the page.
    """

    type: str
    params: dict[str, Any] = field(default_factory=dict)


class ElementTypeRegistry:
    """Trait table for element types, resolved once at startup."""

    def __init__(self, traits: list[ElementTypeTraits] | None = None) -> None:
        self._traits: dict[str, ElementTypeTraits] = {}
        for item in traits or []:
            self.register(item)

    def register(self, traits: ElementTypeTraits) -> None:
        self._traits[traits.name] = traits
        logger.debug(
            "Registered element type %s (has_uris=%s, cacheable=%s, is_global=%s)",
            traits.name,
            traits.has_uris,
            traits.cacheable,
            traits.is_global,
        )

    def get(self, name: str) -> ElementTypeTraits:
        """Traits for a type name; unknown types are plain cacheable types."""
        traits = self._traits.get(name)
        if traits is None:
            return ElementTypeTraits(name=name)
        return traits

    def names(self) -> list[str]:
        return list(self._traits)

    def non_cacheable(self) -> list[str]:
        return [name for name, traits in self._traits.items() if not traits.cacheable]

    def with_uris(self) -> list[str]:
        return [name for name, traits in self._traits.items() if traits.has_uris]
