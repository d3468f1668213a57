"""Filesystem cache storage.

Stores pages as static files that a web server can serve directly:
    {cache_folder}/{site host+path}/{uri}/index.html
    {cache_folder}/{site host+path}/{uri}/index.html.gz  (optional)

Query strings are folded into the path (``?`` becomes ``/``) so that
``page?x=1`` is stored at ``page/x=1/index.html``.

Writes go to a temporary file in the target directory which is then
renamed over the final path, so concurrent readers see either the old
page or the new one, never a truncated file.
"""

from __future__ import annotations

import asyncio
import gzip
import logging
import os
import re
import shutil
from collections.abc import Iterable
from pathlib import Path
from typing import cast
from uuid import uuid4

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from pagecache.core.site_uri import SiteUri
from pagecache.storage.base import CacheStorage, SiteCacheInfo, SiteLookup

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.html"
GZIP_SUFFIX = ".gz"

_SCHEME_RE = re.compile(r"^(http|https)://", re.IGNORECASE)


def _normalize_path(path: str) -> str:
    return os.path.normpath(os.path.abspath(path))


class FileCacheStorage(CacheStorage):
    """Local filesystem page cache backend."""

    def __init__(
        self,
        folder_path: str | Path,
        sites: SiteLookup,
        create_gzip_files: bool = False,
    ):
        """Initialize file cache storage.

        Args:
            folder_path: Root directory of the cache
            sites: Lookup used to map site IDs to base URLs
            create_gzip_files: Also write a gzip-compressed sibling per page
        """
        self.folder_path = _normalize_path(str(folder_path)) if str(folder_path) else ""
        self.sites = sites
        self.create_gzip_files = create_gzip_files
        self._site_paths: dict[int, str] = {}

    def site_path(self, site_id: int) -> str:
        """Root directory for a site, derived from its base URL.

        Returns an empty string if the site is unknown.
        """
        if site_id in self._site_paths:
            return self._site_paths[site_id]

        if not self.folder_path:
            return ""

        site = self.sites.site_by_id(site_id)
        if site is None:
            return ""

        host_path = _SCHEME_RE.sub("", site.base_url)
        path = os.path.normpath(f"{self.folder_path}/{host_path}")
        self._site_paths[site_id] = path
        return path

    def file_path(self, site_uri: SiteUri) -> str:
        """Path of the page file, or an empty string if it is not addressable.

        Paths that resolve outside the site directory (e.g. through ``../``
        segments in the URI) and URIs containing NUL bytes are not
        addressable.
        """
        if "\x00" in site_uri.uri:
            return ""

        site_path = self.site_path(site_uri.site_id)
        if not site_path:
            return ""

        uri = site_uri.uri.replace("?", "/")
        path = os.path.normpath(f"{site_path}/{uri}/{INDEX_FILENAME}")

        if not Path(path).is_relative_to(site_path):
            logger.debug(f"Rejected cache path outside site root: {path}")
            return ""

        return path

    async def get(self, site_uri: SiteUri) -> bytes:
        """Read a cached page from the filesystem."""
        path = self.file_path(site_uri)
        if not path or not await aiofiles.os.path.isfile(path):
            return b""

        try:
            async with aiofiles.open(path, "rb") as f:
                content = await f.read()
        except OSError as e:
            logger.warning(f"Failed to read cached page {path}: {e}")
            return b""

        return cast(bytes, content)

    async def save(self, site_uri: SiteUri, value: bytes) -> None:
        """Write a page, and optionally its gzip sibling, to the filesystem."""
        path = self.file_path(site_uri)
        if not path:
            return

        try:
            await aiofiles.os.makedirs(os.path.dirname(path), exist_ok=True)
            await self._write_atomic(path, value)

            if self.create_gzip_files:
                await self._write_atomic(path + GZIP_SUFFIX, gzip.compress(value))
        except OSError as e:
            logger.error(f"Failed to write cached page {path}: {e}")
            return

        logger.debug(f"Stored cached page at {path} ({len(value)} bytes)")

    async def _write_atomic(self, path: str, value: bytes) -> None:
        tmp_path = f"{path}.{uuid4().hex}.tmp"
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(value)
            await aiofiles.os.replace(tmp_path, path)
        except OSError:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            raise

    async def delete_uris(self, site_uris: Iterable[SiteUri]) -> None:
        """Delete page files and their gzip siblings."""
        for site_uri in site_uris:
            path = self.file_path(site_uri)
            if not path:
                continue

            for candidate in (path, path + GZIP_SUFFIX):
                try:
                    if await aiofiles.os.path.isfile(candidate):
                        await aiofiles.os.remove(candidate)
                except FileNotFoundError:
                    pass  # Removed concurrently

    async def delete_all(self) -> None:
        """Remove the whole cache folder."""
        if not self.folder_path:
            return

        try:
            if await aiofiles.os.path.isdir(self.folder_path):
                await asyncio.to_thread(shutil.rmtree, self.folder_path)
                logger.info(f"Deleted cache folder {self.folder_path}")
        except OSError as e:
            logger.error(f"Failed to delete cache folder {self.folder_path}: {e}")

    async def utility_info(self) -> list[SiteCacheInfo]:
        """Count cached pages per site.

        When one site's folder is nested inside another's (e.g. a site at
        ``example.com/de``), pages of the nested site are only counted for
        the nested site.
        """
        sites = self.sites.all_sites()
        paths = {site.id: self.site_path(site.id) for site in sites}
        files = {
            site_id: await asyncio.to_thread(_find_index_files, path)
            for site_id, path in paths.items()
        }

        infos = []
        for site in sites:
            path = paths[site.id]
            own_files = set(files[site.id])
            for other_id, other_path in paths.items():
                if other_id == site.id or not path or other_path == path:
                    continue
                if Path(other_path).is_relative_to(path):
                    own_files -= files[other_id]

            infos.append(
                SiteCacheInfo(site_id=site.id, name=site.name, path=path, count=len(own_files))
            )

        return infos


def _find_index_files(path: str) -> set[str]:
    if not path or not os.path.isdir(path):
        return set()
    return {str(p) for p in Path(path).rglob(INDEX_FILENAME) if p.is_file()}
