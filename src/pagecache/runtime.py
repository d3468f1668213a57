"""Wiring of the default service graph.

Every service takes its collaborators through its constructor;
``build_services`` assembles them from settings for applications and the
command line.

Example:
    services = build_services(settings, content=my_content_system)
    app.add_middleware(
        PageCacheMiddleware,
        cache_service=services.cache,
        content=services.content,
        settings=services.settings,
    )
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from pagecache.config import Settings
from pagecache.core.content import CachePurger, ContentSystem, StaticContentSystem
from pagecache.core.elements import ElementTypeRegistry
from pagecache.core.site_uri import Site
from pagecache.events.hooks import HookRegistry
from pagecache.jobs.queue import JobQueue, RedisJobQueue, create_job_queue
from pagecache.jobs.tasks import register_cache_handlers
from pagecache.jobs.worker import JobWorker, WorkerConfig
from pagecache.persistence.db import create_engine
from pagecache.services.caching import CacheService
from pagecache.services.invalidation import InvalidationService
from pagecache.storage.base import CacheStorage
from pagecache.storage.factory import create_cache_storage

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """The assembled cache services and their shared collaborators."""

    settings: Settings
    content: ContentSystem
    element_types: ElementTypeRegistry
    storage: CacheStorage
    session_factory: async_sessionmaker[AsyncSession]
    queue: JobQueue
    hooks: HookRegistry
    cache: CacheService
    invalidation: InvalidationService
    engine: AsyncEngine | None = None

    async def close(self) -> None:
        """Release connections opened by build_services."""
        if isinstance(self.queue, RedisJobQueue):
            await self.queue.close()
        if self.engine is not None:
            await self.engine.dispose()


def load_content_system(settings: Settings) -> ContentSystem:
    """Content system named by settings, or the configured static sites.

    ``settings.content_system`` is a ``"module:factory"`` path; the factory
    is called without arguments.
    """
    if settings.content_system:
        module_name, _, attr = settings.content_system.partition(":")
        factory = getattr(importlib.import_module(module_name), attr)
        content = factory()
        logger.info(f"Loaded content system {settings.content_system}")
        return content

    sites = [
        Site(id=site.id, name=site.name or str(site.id), base_url=site.base_url)
        for site in settings.sites
    ]
    return StaticContentSystem(sites)


def build_services(
    settings: Settings,
    content: ContentSystem | None = None,
    element_types: ElementTypeRegistry | None = None,
    purger: CachePurger | None = None,
    hooks: HookRegistry | None = None,
    queue: JobQueue | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> Services:
    """Assemble the cache services, filling unset collaborators from settings."""
    content = content or load_content_system(settings)
    element_types = element_types or ElementTypeRegistry()
    hooks = hooks or HookRegistry()
    queue = queue or create_job_queue(settings.job_queue_backend, settings.redis_url)
    engine = None
    if session_factory is None:
        engine = create_engine(settings.database_url)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    storage = create_cache_storage(settings, content)

    cache = CacheService(settings, storage, session_factory, element_types)
    invalidation = InvalidationService(
        settings,
        storage,
        session_factory,
        queue,
        content,
        element_types,
        purger=purger,
        hooks=hooks,
    )

    return Services(
        settings=settings,
        content=content,
        element_types=element_types,
        storage=storage,
        session_factory=session_factory,
        queue=queue,
        hooks=hooks,
        cache=cache,
        invalidation=invalidation,
        engine=engine,
    )


def build_worker(services: Services, config: WorkerConfig | None = None) -> JobWorker:
    """A worker with the refresh and warm handlers registered."""
    worker = JobWorker(services.queue, config)
    register_cache_handlers(worker, services.invalidation, services.settings)
    return worker
