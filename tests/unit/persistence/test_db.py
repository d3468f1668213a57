"""Tests for the engine and session helpers."""

from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from pagecache.core.site_uri import SiteUri
from pagecache.persistence.db import session_context
from pagecache.persistence.repositories import CacheIndexRepository


async def test_sqlite_foreign_keys_enabled(engine: AsyncEngine) -> None:
    """SQLite connections enforce foreign keys."""
    async with engine.connect() as conn:
        result = await conn.execute(text("PRAGMA foreign_keys"))
        assert result.scalar_one() == 1


async def test_session_context_commits(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Work inside the block is committed."""
    async with session_context(session_factory) as session:
        await CacheIndexRepository(session).insert_or_get_cache_entry(
            SiteUri(site_id=1, uri="blog")
        )

    async with session_context(session_factory) as session:
        entries = await CacheIndexRepository(session).all_cache_entries()
    assert entries == [SiteUri(site_id=1, uri="blog")]


async def test_session_context_rolls_back(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """An exception rolls the block back and propagates."""
    with pytest.raises(RuntimeError):
        async with session_context(session_factory) as session:
            await CacheIndexRepository(session).insert_or_get_cache_entry(
                SiteUri(site_id=1, uri="blog")
            )
            raise RuntimeError("render failed")

    async with session_context(session_factory) as session:
        assert await CacheIndexRepository(session).all_cache_entries() == []
