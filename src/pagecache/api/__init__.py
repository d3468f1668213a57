"""HTTP integration for Starlette applications."""

from pagecache.api.middleware import PageCacheMiddleware, build_request_context

__all__ = [
    "PageCacheMiddleware",
    "build_request_context",
]
