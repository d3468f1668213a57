from __future__ import annotations

from enum import IntEnum

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueryStringCaching(IntEnum):
    """How requests carrying a query string are cached."""

    DISABLED = 0  # Never cache URLs with query strings
    UNIQUE = 1  # Cache each distinct query string as its own page
    SAME_PAGE = 2  # Cache all query strings as the page without one


class UriPattern(BaseModel):
    """A URI regex applied to one site, or to every site when site_id is None."""

    site_id: int | None = None
    pattern: str


class SiteSettings(BaseModel):
    """A site for the command line when no content system is configured."""

    id: int
    name: str = ""
    base_url: str


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PAGECACHE_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "pagecache"
    env: str = "dev"

    # Caching
    caching_enabled: bool = True
    query_string_caching: QueryStringCaching = QueryStringCaching.DISABLED

    included_uri_patterns: list[UriPattern] = Field(
        default_factory=lambda: [UriPattern(pattern=".*")]
    )
    excluded_uri_patterns: list[UriPattern] = Field(default_factory=list)

    # Warming
    warm_cache_automatically: bool = True
    warm_cache_automatically_for_globals: bool = True
    concurrency: int = 3
    warm_request_timeout: float = 30.0

    # Storage driver
    storage_driver: str = "file"
    cache_folder_path: str = "web/cache/pagecache"
    create_gzip_files: bool = False

    # Content system: "module:factory" returning a ContentSystem, or the
    # static sites below
    content_system: str | None = None
    sites: list[SiteSettings] = Field(default_factory=list)

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///pagecache.db",
        validation_alias="DATABASE_URL",
    )

    # Job queue
    job_queue_backend: str = Field(default="redis", validation_alias="JOB_QUEUE_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Observability
    log_level: str = "INFO"
    log_json: bool = True


settings = Settings()
