"""Dependency-aware cache invalidation.

The invalidation service decides which cached pages are stale when an
element changes or reaches its post/expiry date, and hands the actual work
to the job queue:

- add_element() collects the cache IDs of pages that depend on an element
- refresh_cache() submits one refresh job for everything collected
- the refresh job deletes the pages and calls after_refresh_cache()
- after_refresh_cache() notifies observers and submits a warm job

In batch mode (e.g. a bulk save touching many elements) add_element() only
collects, and a single refresh job is submitted when the batch ends.

Example:
    async with invalidation.batching():
        for element in saved_elements:
            await invalidation.add_element(element)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pagecache.config import Settings
from pagecache.core.content import CachePurger, ContentSystem, NullPurger
from pagecache.core.elements import Element, ElementTypeRegistry
from pagecache.core.site_uri import SiteUri, normalize_uri
from pagecache.events.hooks import AfterClearCache, AfterRefreshCache, HookRegistry
from pagecache.jobs.descriptors import RefreshCacheJob, WarmCacheJob
from pagecache.jobs.queue import JobQueue
from pagecache.persistence.db import session_context
from pagecache.persistence.repositories import CacheIndexRepository
from pagecache.request.classifier import HOME_URI, is_cacheable_uri
from pagecache.storage.base import CacheStorage

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InvalidationBatch:
    """Cache IDs, element IDs and element types awaiting a refresh job."""

    cache_ids: set[int] = field(default_factory=set)
    element_ids: set[int] = field(default_factory=set)
    element_types: set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not self.cache_ids and not self.element_ids

    def to_job(self) -> RefreshCacheJob:
        return RefreshCacheJob(
            cache_ids=sorted(self.cache_ids),
            element_ids=sorted(self.element_ids),
            element_types=sorted(self.element_types),
        )


class InvalidationService:
    """Invalidates, refreshes and warms cached pages."""

    def __init__(
        self,
        settings: Settings,
        storage: CacheStorage,
        session_factory: async_sessionmaker[AsyncSession],
        queue: JobQueue,
        content: ContentSystem,
        element_types: ElementTypeRegistry,
        purger: CachePurger | None = None,
        hooks: HookRegistry | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings
        self.storage = storage
        self.session_factory = session_factory
        self.queue = queue
        self.content = content
        self.element_types = element_types
        self.purger = purger or NullPurger()
        self.hooks = hooks or HookRegistry()
        self.clock = clock

        self.batch_mode = False
        self.batch = InvalidationBatch()

    def begin_batch(self) -> None:
        """Collect elements without submitting refresh jobs until refresh_cache()."""
        self.batch_mode = True

    @asynccontextmanager
    async def batching(self) -> AsyncIterator[InvalidationService]:
        """Batch mode for the duration of the block, then one refresh."""
        was_batching = self.batch_mode
        self.batch_mode = True
        try:
            yield self
        finally:
            self.batch_mode = was_batching

        if not was_batching:
            await self.refresh_cache()

    # -------------------------------------------------------------------------
    # Element invalidation
    # -------------------------------------------------------------------------

    async def add_element(self, element: Element) -> None:
        """Add an element whose cached pages are stale."""
        traits = self.element_types.get(element.type)

        # Globals are loaded on every request, so every page depends on them
        if traits.is_global:
            await self.clear_cache()

            if (
                self.settings.caching_enabled
                and self.settings.warm_cache_automatically
                and self.settings.warm_cache_automatically_for_globals
            ):
                await self.warm_cache(await self.get_all_cached_urls())
            return

        if not traits.cacheable:
            return

        element_id = int(element.id)
        if element_id in self.batch.element_ids:
            return

        self.batch.element_ids.add(element_id)
        self.batch.element_types.add(element.type)

        async with session_context(self.session_factory) as session:
            repo = CacheIndexRepository(session)

            # Look up cache IDs now: a refresh job running after the element
            # is deleted could no longer find them
            self.batch.cache_ids.update(await repo.find_cache_ids(element_id))

            expiry_date = element.next_expiry(self.clock())
            if expiry_date is not None:
                await repo.upsert_element_expiry(element_id, expiry_date)

        if not self.batch_mode:
            await self.refresh_cache()

    async def refresh_cache(self) -> None:
        """Submit a refresh job for the collected batch and leave batch mode."""
        self.batch_mode = False
        if self.batch.is_empty():
            return

        job = self.batch.to_job()
        self.batch = InvalidationBatch()

        job_id = await self.queue.submit(job.task, job.to_payload())
        logger.info(
            f"Submitted refresh job {job_id}: {len(job.cache_ids)} cache IDs, "
            f"{len(job.element_ids)} elements"
        )

    async def refresh_expired_cache(self) -> int:
        """Invalidate elements whose post or expiry date has passed.

        Returns:
            Number of due expiry dates processed
        """
        async with session_context(self.session_factory) as session:
            due = await CacheIndexRepository(session).due_expiries(self.clock())

        if not due:
            return 0

        logger.info(f"Refreshing cache for {len(due)} expired elements")

        async with self.batching():
            for element_id, _expiry_date in due:
                # Delete first so that add_element() can record the next date
                async with session_context(self.session_factory) as session:
                    await CacheIndexRepository(session).delete_expiry(element_id)

                element = await self.content.element_by_id(element_id)
                if element is None:
                    continue

                await self.add_element(element)

        return len(due)

    # -------------------------------------------------------------------------
    # Refresh job execution
    # -------------------------------------------------------------------------

    async def execute_refresh(self, job: RefreshCacheJob) -> list[str]:
        """Delete the pages of a refresh job and return their URLs.

        Cache IDs that no longer exist are skipped, so running the same job
        twice is safe.
        """
        async with session_context(self.session_factory) as session:
            repo = CacheIndexRepository(session)
            cache_ids = set(job.cache_ids)
            cache_ids.update(await repo.find_cache_ids_for_element_types(job.element_types))
            site_uris = await repo.cache_entries_for_ids(cache_ids)

        urls = self._urls_for(site_uris)

        await self.storage.delete_uris(site_uris)

        async with session_context(self.session_factory) as session:
            deleted = await CacheIndexRepository(session).delete_entries_for_ids(cache_ids)

        logger.info(f"Refreshed {deleted} cached pages")

        if urls:
            await self._purge(urls)

        await self.after_refresh_cache(urls)
        return urls

    async def after_refresh_cache(self, urls: list[str]) -> None:
        """Notify observers and warm the refreshed URLs."""
        if self.hooks.has_handlers(AfterRefreshCache):
            await self.hooks.trigger(AfterRefreshCache(urls=list(urls)))

        if self.settings.caching_enabled and self.settings.warm_cache_automatically and urls:
            await self.warm_cache(urls)

    async def warm_cache(self, urls: list[str]) -> None:
        """Submit a warm job for the URLs."""
        job = WarmCacheJob(urls=list(urls), concurrency=self.settings.concurrency)
        job_id = await self.queue.submit(job.task, job.to_payload())
        logger.info(f"Submitted warm job {job_id}: {len(job.urls)} URLs")

    # -------------------------------------------------------------------------
    # Clearing
    # -------------------------------------------------------------------------

    async def clear_cache_records(self, site_id: int, uri: str) -> None:
        async with session_context(self.session_factory) as session:
            await CacheIndexRepository(session).delete_entries_for_key(site_id, normalize_uri(uri))

    async def clear_cache(self, flush: bool = False) -> None:
        """Delete every cached page; with flush, also the cache index."""
        await self.storage.delete_all()

        try:
            await self.purger.purge_all()
        except Exception:
            logger.exception("Purging the external cache failed")

        if flush:
            async with session_context(self.session_factory) as session:
                deleted = await CacheIndexRepository(session).delete_all_entries()
            logger.info(f"Flushed {deleted} cache records")

            await self.run_garbage_collection()

        if self.hooks.has_handlers(AfterClearCache):
            await self.hooks.trigger(AfterClearCache())

    async def run_garbage_collection(self) -> dict[str, int]:
        """Delete element query and association rows without a cached page."""
        async with session_context(self.session_factory) as session:
            repo = CacheIndexRepository(session)
            element_queries = await repo.prune_orphan_element_queries()
            element_caches = await repo.prune_orphan_element_associations()

        logger.info(
            f"Garbage collection removed {element_queries} element queries "
            f"and {element_caches} element associations"
        )
        return {"element_queries": element_queries, "element_caches": element_caches}

    # -------------------------------------------------------------------------
    # URLs
    # -------------------------------------------------------------------------

    def _urls_for(self, site_uris: Iterable[SiteUri]) -> list[str]:
        urls = []
        for site_uri in site_uris:
            site = self.content.site_by_id(site_uri.site_id)
            if site is not None:
                urls.append(site_uri.url(site))
        return urls

    async def get_cached_urls(self, cache_ids: Iterable[int]) -> list[str]:
        async with session_context(self.session_factory) as session:
            site_uris = await CacheIndexRepository(session).cache_entries_for_ids(cache_ids)
        return self._urls_for(site_uris)

    async def get_all_cached_urls(self) -> list[str]:
        """URLs of every cached page plus every cacheable element URL."""
        urls: list[str] = []
        seen: set[str] = set()

        def add(url: str) -> None:
            if url not in seen:
                seen.add(url)
                urls.append(url)

        async with session_context(self.session_factory) as session:
            site_uris = await CacheIndexRepository(session).all_cache_entries()

        cacheable = [
            site_uri
            for site_uri in site_uris
            if is_cacheable_uri(site_uri.site_id, site_uri.uri, self.settings)
        ]
        for url in self._urls_for(cacheable):
            add(url)

        sites = self.content.all_sites()
        for element_type in self.content.all_element_types():
            if not self.element_types.get(element_type).has_uris:
                continue

            for site in sites:
                for element in await self.content.elements_of_type(element_type, site.id):
                    if element.uri is None or element.url is None:
                        continue

                    uri = normalize_uri(element.uri)
                    if uri == HOME_URI:
                        uri = ""

                    if is_cacheable_uri(site.id, uri, self.settings):
                        add(element.url)

        return urls

    async def _purge(self, urls: list[str]) -> None:
        try:
            await self.purger.purge_urls(urls)
        except Exception:
            logger.exception("Purging URLs from the external cache failed")
