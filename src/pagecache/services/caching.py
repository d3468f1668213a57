"""Read and write path of the page cache.

The cache service stores rendered output and records what each cached page
depends on, so that the invalidation service can later find the pages an
element change makes stale.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pagecache.config import Settings
from pagecache.core.elements import ElementQuery, ElementTypeRegistry
from pagecache.core.site_uri import SiteUri
from pagecache.persistence.db import session_context
from pagecache.persistence.repositories import CacheIndexRepository
from pagecache.storage.base import CacheStorage

logger = logging.getLogger(__name__)


class CacheService:
    """Stores cached pages and their element dependencies."""

    def __init__(
        self,
        settings: Settings,
        storage: CacheStorage,
        session_factory: async_sessionmaker[AsyncSession],
        element_types: ElementTypeRegistry,
    ):
        self.settings = settings
        self.storage = storage
        self.session_factory = session_factory
        self.element_types = element_types

    async def get_cached_value(self, site_uri: SiteUri) -> bytes:
        return await self.storage.get(site_uri)

    async def save_output(
        self,
        site_uri: SiteUri,
        output: bytes | str,
        element_ids: Iterable[int] = (),
        element_queries: Iterable[ElementQuery] = (),
    ) -> int | None:
        """Store a rendered page and record what it depends on.

        Args:
            site_uri: Cache key of the page
            output: Rendered response body
            element_ids: Elements the page rendered
            element_queries: Element queries the page executed

        Returns:
            ID of the cache row, or None if the index could not be updated
        """
        if isinstance(output, str):
            output = output.encode("utf-8")

        await self.storage.save(site_uri, output)

        try:
            async with session_context(self.session_factory) as session:
                repo = CacheIndexRepository(session)
                cache_id = await repo.insert_or_get_cache_entry(site_uri)

                for element_id in sorted({int(element_id) for element_id in element_ids}):
                    await repo.add_element_association(cache_id, element_id)

                for query in element_queries:
                    await repo.add_element_query(cache_id, query.type, query.params)
        except SQLAlchemyError:
            # The page is stored either way; without index rows it is only
            # invalidated by a full clear
            logger.exception(f"Failed to record cache entry for {site_uri.uri!r}")
            return None

        logger.debug(f"Cached site {site_uri.site_id} uri {site_uri.uri!r} as {cache_id}")
        return cache_id

    def non_cacheable_element_types(self) -> list[str]:
        return self.element_types.non_cacheable()
