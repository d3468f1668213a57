"""Repository for the cache index.

The cache index records which pages are cached, which elements and
element queries each page depends on, and when elements are next due to
go live or expire. It is a pure data layer: deciding what to invalidate
belongs to the invalidation service.

Upserts use INSERT ... ON CONFLICT, built with the PostgreSQL or SQLite
dialect depending on the session's bind.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import datetime
from typing import Any, cast

import orjson
from sqlalchemy import CursorResult, delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from pagecache.core.site_uri import SiteUri
from pagecache.persistence.tables import (
    CacheTable,
    ElementCacheTable,
    ElementExpiryDateTable,
    ElementQueryCacheTable,
    ElementQueryTable,
)


def element_query_hash(element_type: str, params: dict[str, Any]) -> str:
    """Stable hash of an element query (type plus canonical params)."""
    payload = orjson.dumps({"type": element_type, "params": params}, option=orjson.OPT_SORT_KEYS)
    return hashlib.sha256(payload).hexdigest()


def _rowcount(result: Any) -> int:
    return cast(CursorResult[Any], result).rowcount or 0


class CacheIndexRepository:
    """Data access for cache entries and their dependencies."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self, table: Any) -> Any:
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(table)
        if dialect == "sqlite":
            return sqlite.insert(table)
        raise NotImplementedError(f"Upserts are not supported on {dialect}")

    # -------------------------------------------------------------------------
    # Cache entries
    # -------------------------------------------------------------------------

    async def insert_or_get_cache_entry(self, site_uri: SiteUri) -> int:
        """Return the ID of the cache row for a key, creating it if needed."""
        stmt = (
            self._insert(CacheTable)
            .values(site_id=site_uri.site_id, uri=site_uri.uri)
            .on_conflict_do_nothing(index_elements=["site_id", "uri"])
        )
        await self.session.execute(stmt)

        result = await self.session.execute(
            select(CacheTable.id).where(
                CacheTable.site_id == site_uri.site_id,
                CacheTable.uri == site_uri.uri,
            )
        )
        return int(result.scalar_one())

    async def cache_entries_for_ids(self, cache_ids: Iterable[int]) -> list[SiteUri]:
        ids = list(cache_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(CacheTable.site_id, CacheTable.uri)
            .where(CacheTable.id.in_(ids))
            .order_by(CacheTable.id)
        )
        return [SiteUri(site_id=row.site_id, uri=row.uri) for row in result]

    async def all_cache_entries(self) -> list[SiteUri]:
        result = await self.session.execute(
            select(CacheTable.site_id, CacheTable.uri).order_by(CacheTable.id)
        )
        return [SiteUri(site_id=row.site_id, uri=row.uri) for row in result]

    async def delete_entries_for_key(self, site_id: int, uri: str) -> int:
        result = await self.session.execute(
            delete(CacheTable)
            .where(CacheTable.site_id == site_id, CacheTable.uri == uri)
            .execution_options(synchronize_session=False)
        )
        return _rowcount(result)

    async def delete_entries_for_ids(self, cache_ids: Iterable[int]) -> int:
        ids = list(cache_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            delete(CacheTable)
            .where(CacheTable.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        return _rowcount(result)

    async def delete_all_entries(self) -> int:
        result = await self.session.execute(
            delete(CacheTable).execution_options(synchronize_session=False)
        )
        return _rowcount(result)

    # -------------------------------------------------------------------------
    # Element associations
    # -------------------------------------------------------------------------

    async def find_cache_ids(self, element_id: int) -> list[int]:
        """Distinct cache IDs of pages that depend on an element."""
        result = await self.session.execute(
            select(ElementCacheTable.cache_id)
            .where(ElementCacheTable.element_id == element_id)
            .group_by(ElementCacheTable.cache_id)
            .order_by(ElementCacheTable.cache_id)
        )
        return [int(cache_id) for cache_id in result.scalars()]

    async def add_element_association(self, cache_id: int, element_id: int) -> None:
        stmt = (
            self._insert(ElementCacheTable)
            .values(cache_id=cache_id, element_id=element_id)
            .on_conflict_do_nothing(index_elements=["cache_id", "element_id"])
        )
        await self.session.execute(stmt)

    async def prune_orphan_element_associations(self) -> int:
        """Delete association rows whose cache row no longer exists."""
        live = (
            select(CacheTable.id)
            .where(CacheTable.id == ElementCacheTable.cache_id)
            .correlate(ElementCacheTable)
        )
        result = await self.session.execute(
            delete(ElementCacheTable)
            .where(~live.exists())
            .execution_options(synchronize_session=False)
        )
        return _rowcount(result)

    # -------------------------------------------------------------------------
    # Element expiry dates
    # -------------------------------------------------------------------------

    async def upsert_element_expiry(self, element_id: int, expiry_date: datetime) -> None:
        """Record an expiry date, keeping the earlier of the stored and new dates."""
        stmt = self._insert(ElementExpiryDateTable).values(
            element_id=element_id, expiry_date=expiry_date
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["element_id"],
            set_={"expiry_date": stmt.excluded.expiry_date},
            where=ElementExpiryDateTable.expiry_date > stmt.excluded.expiry_date,
        )
        await self.session.execute(stmt)

    async def get_element_expiry(self, element_id: int) -> datetime | None:
        result = await self.session.execute(
            select(ElementExpiryDateTable.expiry_date).where(
                ElementExpiryDateTable.element_id == element_id
            )
        )
        return result.scalar_one_or_none()

    async def due_expiries(self, now: datetime) -> list[tuple[int, datetime]]:
        """Expiry rows dated strictly before now, soonest first."""
        result = await self.session.execute(
            select(ElementExpiryDateTable.element_id, ElementExpiryDateTable.expiry_date)
            .where(ElementExpiryDateTable.expiry_date < now)
            .order_by(ElementExpiryDateTable.expiry_date)
        )
        return [(int(row.element_id), row.expiry_date) for row in result]

    async def delete_expiry(self, element_id: int) -> None:
        await self.session.execute(
            delete(ElementExpiryDateTable)
            .where(ElementExpiryDateTable.element_id == element_id)
            .execution_options(synchronize_session=False)
        )

    # -------------------------------------------------------------------------
    # Element queries
    # -------------------------------------------------------------------------

    async def add_element_query(
        self,
        cache_id: int,
        element_type: str,
        params: dict[str, Any],
    ) -> int:
        """Associate a cached page with an element query, returning the query ID."""
        query_hash = element_query_hash(element_type, params)

        stmt = (
            self._insert(ElementQueryTable)
            .values(
                hash=query_hash,
                type=element_type,
                params=orjson.dumps(params, option=orjson.OPT_SORT_KEYS).decode(),
            )
            .on_conflict_do_nothing(index_elements=["hash"])
        )
        await self.session.execute(stmt)

        result = await self.session.execute(
            select(ElementQueryTable.id).where(ElementQueryTable.hash == query_hash)
        )
        query_id = int(result.scalar_one())

        await self.session.execute(
            self._insert(ElementQueryCacheTable)
            .values(cache_id=cache_id, query_id=query_id)
            .on_conflict_do_nothing(index_elements=["cache_id", "query_id"])
        )
        return query_id

    async def find_cache_ids_for_element_types(self, element_types: Iterable[str]) -> list[int]:
        """Distinct cache IDs of pages that ran a query over any of the types."""
        types = list(element_types)
        if not types:
            return []
        result = await self.session.execute(
            select(ElementQueryCacheTable.cache_id)
            .join(ElementQueryTable, ElementQueryTable.id == ElementQueryCacheTable.query_id)
            .where(ElementQueryTable.type.in_(types))
            .group_by(ElementQueryCacheTable.cache_id)
            .order_by(ElementQueryCacheTable.cache_id)
        )
        return [int(cache_id) for cache_id in result.scalars()]

    async def prune_orphan_element_queries(self) -> int:
        """Delete element queries no longer associated with any cached page."""
        # Query caches whose cache row is gone (no FK enforcement) count as absent
        live = (
            select(ElementQueryCacheTable.id)
            .join(CacheTable, CacheTable.id == ElementQueryCacheTable.cache_id)
            .where(ElementQueryCacheTable.query_id == ElementQueryTable.id)
            .correlate(ElementQueryTable)
        )
        result = await self.session.execute(
            delete(ElementQueryTable)
            .where(~live.exists())
            .execution_options(synchronize_session=False)
        )
        return _rowcount(result)
