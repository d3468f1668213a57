"""SQLAlchemy ORM models for the cache index.

Tables:
- cache: one row per cached page (site_id, uri)
- element_caches: which elements each cached page depends on
- element_expiry_dates: soonest pending post/expiry date per element
- element_queries: dynamic element queries a cached page depends on
- element_query_caches: which cached pages ran which element queries

Rows in element_caches and element_query_caches are removed together with
their cache row through ON DELETE CASCADE.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UtcDateTime(TypeDecorator[datetime]):
    """Timezone-aware datetime stored as UTC.

    SQLite drops tzinfo on the way in; values are converted to UTC before
    binding and come back as aware UTC datetimes on every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class CacheTable(Base):
    """A cached page."""

    __tablename__ = "cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(Integer, nullable=False)
    uri: Mapped[str] = mapped_column(String(2048), nullable=False)

    __table_args__ = (UniqueConstraint("site_id", "uri", name="uq_cache_site_uri"),)


class ElementCacheTable(Base):
    """Association between an element and a cached page that rendered it."""

    __tablename__ = "element_caches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cache_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cache.id", ondelete="CASCADE"), nullable=False
    )
    element_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("cache_id", "element_id", name="uq_element_caches_pair"),
        Index("idx_element_caches_element_id", "element_id"),
    )


class ElementExpiryDateTable(Base):
    """Soonest pending post or expiry date of an element."""

    __tablename__ = "element_expiry_dates"

    element_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    expiry_date: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, index=True)


class ElementQueryTable(Base):
    """A dynamic element query (element type plus parameters).

    The hash identifies the query so that pages running the same query
    share one row.
    """

    __tablename__ = "element_queries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    params: Mapped[str] = mapped_column(Text, nullable=False)


class ElementQueryCacheTable(Base):
    """Association between an element query and a cached page that ran it."""

    __tablename__ = "element_query_caches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cache_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cache.id", ondelete="CASCADE"), nullable=False
    )
    query_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("element_queries.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("cache_id", "query_id", name="uq_element_query_caches_pair"),
        Index("idx_element_query_caches_query_id", "query_id"),
    )
