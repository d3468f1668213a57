"""Observer hooks fired after cache operations.

Handlers are async callables registered per event type and awaited in
registration order. Handler failures are logged and do not stop the
remaining handlers or the operation that fired the event.

Example:
    hooks = HookRegistry()

    async def purge_cdn(event: AfterRefreshCache) -> None:
        await cdn.purge(event.urls)

    hooks.register(AfterRefreshCache, purge_cdn)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AfterRefreshCache:
    """Cached pages were invalidated; urls are the pages affected."""

    urls: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AfterClearCache:
    """The whole cache was cleared."""


EventT = TypeVar("EventT")
HookHandler = Callable[[Any], Awaitable[None]]


class HookRegistry:
    """Ordered lists of handlers per event type."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[HookHandler]] = {}

    def register(
        self,
        event_type: type[EventT],
        handler: Callable[[EventT], Awaitable[None]],
    ) -> None:
        self._handlers.setdefault(event_type, []).append(handler)
        handler_name = getattr(handler, "__name__", handler.__class__.__name__)
        logger.info(f"Registered {event_type.__name__} handler: {handler_name}")

    def unregister(self, event_type: type, handler: HookHandler) -> bool:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def has_handlers(self, event_type: type) -> bool:
        return bool(self._handlers.get(event_type))

    async def trigger(self, event: Any) -> None:
        """Await every handler registered for the event's type, in order."""
        for handler in list(self._handlers.get(type(event), [])):
            try:
                await handler(event)
            except Exception:
                logger.exception(f"{type(event).__name__} handler failed")
