"""Persistence layer for the cache index.

This module provides:
- Async engine and session factory (PostgreSQL via asyncpg, SQLite via aiosqlite)
- SQLAlchemy ORM tables for cache entries and their dependencies
- CacheIndexRepository, the data access surface used by the services
"""

from pagecache.persistence.db import (
    create_engine,
    get_engine,
    get_session_factory,
    init_db,
    session_context,
)
from pagecache.persistence.repositories import CacheIndexRepository, element_query_hash
from pagecache.persistence.tables import (
    Base,
    CacheTable,
    ElementCacheTable,
    ElementExpiryDateTable,
    ElementQueryCacheTable,
    ElementQueryTable,
)

__all__ = [
    # DB
    "create_engine",
    "get_engine",
    "get_session_factory",
    "init_db",
    "session_context",
    # Tables
    "Base",
    "CacheTable",
    "ElementCacheTable",
    "ElementExpiryDateTable",
    "ElementQueryCacheTable",
    "ElementQueryTable",
    # Repository
    "CacheIndexRepository",
    "element_query_hash",
]
