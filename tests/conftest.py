"""Global pytest configuration and fixtures.

Provides a fake content system, a file-backed SQLite cache index and the
services wired against them.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from pagecache.config import Settings
from pagecache.core.elements import Element, ElementTypeRegistry, ElementTypeTraits
from pagecache.core.site_uri import Site
from pagecache.events.hooks import HookRegistry
from pagecache.exceptions import SiteNotFoundError
from pagecache.jobs.queue import InMemoryJobQueue
from pagecache.persistence.db import create_engine, init_db
from pagecache.services.caching import CacheService
from pagecache.services.invalidation import InvalidationService
from pagecache.storage.file import FileCacheStorage

SITE = Site(id=1, name="Example", base_url="https://example.com/")
GERMAN_SITE = Site(id=2, name="German", base_url="https://example.com/de/")


class FakeContentSystem:
    """In-memory content system for tests."""

    def __init__(self, sites: list[Site] | None = None) -> None:
        self.sites = {site.id: site for site in sites or [SITE, GERMAN_SITE]}
        self.current_site_id: int | None = SITE.id
        self.elements: dict[int, Element] = {}
        self.element_types: list[str] = ["entry", "asset", "globalset", "user"]

    def add(self, element: Element) -> Element:
        self.elements[element.id] = element
        return element

    def current_site(self) -> Site:
        if self.current_site_id is None or self.current_site_id not in self.sites:
            raise SiteNotFoundError(self.current_site_id)
        return self.sites[self.current_site_id]

    def all_sites(self) -> list[Site]:
        return list(self.sites.values())

    def site_by_id(self, site_id: int) -> Site | None:
        return self.sites.get(site_id)

    async def element_by_id(self, element_id: int) -> Element | None:
        return self.elements.get(element_id)

    def all_element_types(self) -> list[str]:
        return list(self.element_types)

    async def elements_of_type(self, element_type: str, site_id: int) -> list[Element]:
        return [
            element
            for element in self.elements.values()
            if element.type == element_type and element.site_id == site_id
        ]


@pytest.fixture
def site() -> Site:
    return SITE


@pytest.fixture
def german_site() -> Site:
    return GERMAN_SITE


@pytest.fixture
def content() -> FakeContentSystem:
    """Content system with two sites and no elements."""
    return FakeContentSystem()


@pytest.fixture
def element_types() -> ElementTypeRegistry:
    """Entries have URLs, globals clear everything, users are never cached."""
    return ElementTypeRegistry(
        [
            ElementTypeTraits(name="entry", has_uris=True),
            ElementTypeTraits(name="asset"),
            ElementTypeTraits(name="globalset", cacheable=False, is_global=True),
            ElementTypeTraits(name="user", cacheable=False),
        ]
    )


@pytest.fixture
def cache_folder(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def settings(tmp_path: Path, cache_folder: Path) -> Settings:
    """Settings pointing at a temporary cache folder and database."""
    return Settings(
        cache_folder_path=str(cache_folder),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'index.db'}",
        job_queue_backend="memory",
        warm_cache_automatically=False,
    )


@pytest.fixture
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    """Engine with the cache index tables created."""
    engine = create_engine(settings.database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """A session committed by the test itself."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(cache_folder: Path, content: FakeContentSystem) -> FileCacheStorage:
    return FileCacheStorage(cache_folder, content)


@pytest.fixture
def queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


@pytest.fixture
def hooks() -> HookRegistry:
    return HookRegistry()


@pytest.fixture
def cache_service(
    settings: Settings,
    storage: FileCacheStorage,
    session_factory: async_sessionmaker[AsyncSession],
    element_types: ElementTypeRegistry,
) -> CacheService:
    return CacheService(settings, storage, session_factory, element_types)


@pytest.fixture
def invalidation(
    settings: Settings,
    storage: FileCacheStorage,
    session_factory: async_sessionmaker[AsyncSession],
    queue: InMemoryJobQueue,
    content: FakeContentSystem,
    element_types: ElementTypeRegistry,
    hooks: HookRegistry,
) -> InvalidationService:
    return InvalidationService(
        settings,
        storage,
        session_factory,
        queue,
        content,
        element_types,
        hooks=hooks,
    )
