"""Payload descriptors for refresh and warm jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

REFRESH_CACHE_TASK = "refresh_cache"
WARM_CACHE_TASK = "warm_cache"


@dataclass
class RefreshCacheJob:
    """Invalidate cached pages and report the URLs that were affected."""

    cache_ids: list[int] = field(default_factory=list)
    element_ids: list[int] = field(default_factory=list)
    element_types: list[str] = field(default_factory=list)

    task = REFRESH_CACHE_TASK

    def to_payload(self) -> dict[str, Any]:
        return {
            "cache_ids": list(self.cache_ids),
            "element_ids": list(self.element_ids),
            "element_types": list(self.element_types),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RefreshCacheJob:
        return cls(
            cache_ids=[int(i) for i in payload.get("cache_ids", [])],
            element_ids=[int(i) for i in payload.get("element_ids", [])],
            element_types=[str(t) for t in payload.get("element_types", [])],
        )


@dataclass
class WarmCacheJob:
    """Request URLs so that their pages are cached again."""

    urls: list[str] = field(default_factory=list)
    concurrency: int = 1

    task = WARM_CACHE_TASK

    def to_payload(self) -> dict[str, Any]:
        return {"urls": list(self.urls), "concurrency": self.concurrency}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> WarmCacheJob:
        return cls(
            urls=[str(url) for url in payload.get("urls", [])],
            concurrency=max(1, int(payload.get("concurrency", 1))),
        )
