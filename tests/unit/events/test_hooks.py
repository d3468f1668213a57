"""Tests for the hook registry."""

from __future__ import annotations

import pytest

from pagecache.events.hooks import AfterClearCache, AfterRefreshCache, HookRegistry


class TestHookRegistry:
    """Tests for registering and triggering hooks."""

    @pytest.fixture
    def hooks(self) -> HookRegistry:
        return HookRegistry()

    def test_has_handlers(self, hooks: HookRegistry) -> None:
        """has_handlers reflects registrations per event type."""

        async def handler(event: AfterRefreshCache) -> None:
            return None

        assert not hooks.has_handlers(AfterRefreshCache)

        hooks.register(AfterRefreshCache, handler)

        assert hooks.has_handlers(AfterRefreshCache)
        assert not hooks.has_handlers(AfterClearCache)

    async def test_handlers_run_in_order(self, hooks: HookRegistry) -> None:
        """Handlers are awaited in registration order with the event."""
        calls: list[tuple[str, list[str]]] = []

        async def first(event: AfterRefreshCache) -> None:
            calls.append(("first", event.urls))

        async def second(event: AfterRefreshCache) -> None:
            calls.append(("second", event.urls))

        hooks.register(AfterRefreshCache, first)
        hooks.register(AfterRefreshCache, second)

        await hooks.trigger(AfterRefreshCache(urls=["https://example.com/"]))

        assert calls == [
            ("first", ["https://example.com/"]),
            ("second", ["https://example.com/"]),
        ]

    async def test_failing_handler_does_not_stop_others(
        self, hooks: HookRegistry, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A failing handler is logged and the next handler still runs."""
        calls: list[str] = []

        async def broken(event: AfterClearCache) -> None:
            raise RuntimeError("boom")

        async def working(event: AfterClearCache) -> None:
            calls.append("working")

        hooks.register(AfterClearCache, broken)
        hooks.register(AfterClearCache, working)

        await hooks.trigger(AfterClearCache())

        assert calls == ["working"]
        assert "AfterClearCache handler failed" in caplog.text

    async def test_unregister(self, hooks: HookRegistry) -> None:
        """Unregistered handlers are no longer called."""
        calls: list[str] = []

        async def handler(event: AfterClearCache) -> None:
            calls.append("called")

        hooks.register(AfterClearCache, handler)

        assert hooks.unregister(AfterClearCache, handler) is True
        assert hooks.unregister(AfterClearCache, handler) is False

        await hooks.trigger(AfterClearCache())
        assert calls == []
