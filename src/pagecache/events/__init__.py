"""Cache lifecycle events and their observer registry."""

from pagecache.events.hooks import AfterClearCache, AfterRefreshCache, HookHandler, HookRegistry

__all__ = [
    "AfterClearCache",
    "AfterRefreshCache",
    "HookHandler",
    "HookRegistry",
]
