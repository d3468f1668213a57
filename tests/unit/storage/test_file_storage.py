"""Tests for the filesystem cache storage."""

from __future__ import annotations

import gzip
import logging
from pathlib import Path

import pytest

from pagecache.config import Settings
from pagecache.core.site_uri import SiteUri
from pagecache.exceptions import UnsupportedStorageDriverError
from pagecache.storage.factory import create_cache_storage
from pagecache.storage.file import FileCacheStorage


class TestFilePaths:
    """Tests for mapping cache keys to files."""

    def test_site_path_strips_scheme(self, storage: FileCacheStorage, cache_folder: Path) -> None:
        """Site root is the cache folder plus host and path of the base URL."""
        assert storage.site_path(1) == str(cache_folder / "example.com")
        assert storage.site_path(2) == str(cache_folder / "example.com" / "de")

    def test_unknown_site_has_no_path(self, storage: FileCacheStorage) -> None:
        """Unknown sites are not addressable."""
        assert storage.site_path(99) == ""
        assert storage.file_path(SiteUri(site_id=99, uri="blog")) == ""

    def test_file_path(self, storage: FileCacheStorage, cache_folder: Path) -> None:
        """Pages are stored as index.html below their URI."""
        path = storage.file_path(SiteUri(site_id=1, uri="blog/post-1"))

        assert path == str(cache_folder / "example.com" / "blog" / "post-1" / "index.html")

    def test_home_page_path(self, storage: FileCacheStorage, cache_folder: Path) -> None:
        """The empty URI is the site root."""
        path = storage.file_path(SiteUri(site_id=1, uri=""))

        assert path == str(cache_folder / "example.com" / "index.html")

    def test_query_string_folded_into_path(
        self, storage: FileCacheStorage, cache_folder: Path
    ) -> None:
        """The query string becomes a path segment."""
        path = storage.file_path(SiteUri(site_id=1, uri="search?q=cache"))

        assert path == str(cache_folder / "example.com" / "search" / "q=cache" / "index.html")

    def test_path_outside_site_rejected(self, storage: FileCacheStorage) -> None:
        """URIs escaping the site root are not addressable."""
        assert storage.file_path(SiteUri(site_id=1, uri="../../etc/passwd")) == ""
        assert storage.file_path(SiteUri(site_id=1, uri="../example.com-other/page")) == ""

    def test_nul_byte_rejected(self, storage: FileCacheStorage) -> None:
        """URIs with NUL bytes are not addressable."""
        assert storage.file_path(SiteUri(site_id=1, uri="bad\x00page")) == ""

    def test_parent_segments_inside_site_allowed(
        self, storage: FileCacheStorage, cache_folder: Path
    ) -> None:
        """Parent segments that stay inside the site root are normalized."""
        path = storage.file_path(SiteUri(site_id=1, uri="blog/../news"))

        assert path == str(cache_folder / "example.com" / "news" / "index.html")


class TestReadWrite:
    """Tests for saving, reading and deleting pages."""

    async def test_get_missing_returns_empty(self, storage: FileCacheStorage) -> None:
        """A page that was never saved reads as empty bytes."""
        assert await storage.get(SiteUri(site_id=1, uri="missing")) == b""

    async def test_save_then_get(self, storage: FileCacheStorage) -> None:
        """Saved content is returned by get."""
        key = SiteUri(site_id=1, uri="blog/post-1")

        await storage.save(key, b"<html>post</html>")

        assert await storage.get(key) == b"<html>post</html>"

    async def test_save_overwrites(self, storage: FileCacheStorage) -> None:
        """A second save replaces the page and leaves no temporary files."""
        key = SiteUri(site_id=1, uri="about")

        await storage.save(key, b"old")
        await storage.save(key, b"new")

        assert await storage.get(key) == b"new"
        page_dir = Path(storage.file_path(key)).parent
        assert [p.name for p in page_dir.iterdir()] == ["index.html"]

    async def test_save_outside_site_writes_nothing(
        self, storage: FileCacheStorage, cache_folder: Path
    ) -> None:
        """Saving an escaping URI is a no-op."""
        key = SiteUri(site_id=1, uri="../../escape")

        await storage.save(key, b"payload")

        assert await storage.get(key) == b""
        assert not cache_folder.exists()

    async def test_save_nul_byte_uri_is_noop(
        self, storage: FileCacheStorage, cache_folder: Path
    ) -> None:
        """A URI with a NUL byte is neither written nor read."""
        key = SiteUri(site_id=1, uri="bad\x00page")

        await storage.save(key, b"payload")

        assert await storage.get(key) == b""
        assert not cache_folder.exists()

    async def test_gzip_sibling(self, cache_folder: Path, content) -> None:
        """With gzip enabled a compressed copy is written next to the page."""
        storage = FileCacheStorage(cache_folder, content, create_gzip_files=True)
        key = SiteUri(site_id=1, uri="blog")

        await storage.save(key, b"<html>blog</html>")

        gz_path = Path(storage.file_path(key) + ".gz")
        assert gzip.decompress(gz_path.read_bytes()) == b"<html>blog</html>"

    async def test_delete_uris(self, cache_folder: Path, content) -> None:
        """Deleting removes the page and its gzip sibling only."""
        storage = FileCacheStorage(cache_folder, content, create_gzip_files=True)
        deleted = SiteUri(site_id=1, uri="blog/post-1")
        kept = SiteUri(site_id=1, uri="blog/post-2")
        await storage.save(deleted, b"one")
        await storage.save(kept, b"two")

        await storage.delete_uris([deleted, SiteUri(site_id=1, uri="never-cached")])

        assert await storage.get(deleted) == b""
        assert not Path(storage.file_path(deleted) + ".gz").exists()
        assert await storage.get(kept) == b"two"

    async def test_delete_all(self, storage: FileCacheStorage, cache_folder: Path) -> None:
        """Deleting everything removes the cache folder."""
        await storage.save(SiteUri(site_id=1, uri="a"), b"a")
        await storage.save(SiteUri(site_id=2, uri="b"), b"b")

        await storage.delete_all()

        assert not cache_folder.exists()
        assert await storage.get(SiteUri(site_id=1, uri="a")) == b""

    async def test_delete_all_without_folder(self, storage: FileCacheStorage) -> None:
        """Deleting an absent cache folder is a no-op."""
        await storage.delete_all()



class TestFilesystemErrors:
    """Tests that filesystem errors are logged and not raised."""

    async def test_save_error_logged(
        self,
        storage: FileCacheStorage,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A failing directory creation leaves save a no-op."""

        async def fail(*args, **kwargs):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr("aiofiles.os.makedirs", fail)
        key = SiteUri(site_id=1, uri="blog")

        with caplog.at_level(logging.ERROR, logger="pagecache.storage.file"):
            await storage.save(key, b"<html>blog</html>")

        assert await storage.get(key) == b""
        assert "Failed to write cached page" in caplog.text
        assert "read-only filesystem" in caplog.text

    async def test_delete_all_error_logged(
        self,
        storage: FileCacheStorage,
        cache_folder: Path,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A failing removal leaves the cache folder in place."""
        await storage.save(SiteUri(site_id=1, uri="a"), b"a")

        def fail(path, *args, **kwargs):
            raise PermissionError(f"cannot remove {path}")

        monkeypatch.setattr("shutil.rmtree", fail)

        with caplog.at_level(logging.ERROR, logger="pagecache.storage.file"):
            await storage.delete_all()

        assert cache_folder.exists()
        assert "Failed to delete cache folder" in caplog.text

class TestUtilityInfo:
    """Tests for the per-site report."""

    async def test_nested_site_pages_counted_once(self, storage: FileCacheStorage) -> None:
        """Pages of a site nested in another site's folder count for the nested site only."""
        await storage.save(SiteUri(site_id=1, uri=""), b"home")
        await storage.save(SiteUri(site_id=1, uri="blog"), b"blog")
        await storage.save(SiteUri(site_id=2, uri=""), b"start")
        await storage.save(SiteUri(site_id=2, uri="blog"), b"blog")
        await storage.save(SiteUri(site_id=2, uri="kontakt"), b"kontakt")

        infos = {info.site_id: info for info in await storage.utility_info()}

        assert infos[1].count == 2
        assert infos[2].count == 3
        assert infos[1].name == "Example"
        assert infos[2].path == storage.site_path(2)

    async def test_empty_cache(self, storage: FileCacheStorage) -> None:
        """Sites without a folder report zero pages."""
        infos = await storage.utility_info()

        assert [info.count for info in infos] == [0, 0]


class TestStorageFactory:
    """Tests for create_cache_storage."""

    def test_file_driver(self, settings: Settings, content) -> None:
        """The file driver is built from settings."""
        storage = create_cache_storage(settings, content)

        assert isinstance(storage, FileCacheStorage)
        assert storage.folder_path == settings.cache_folder_path

    def test_unknown_driver(self, settings: Settings, content) -> None:
        """Unknown drivers are rejected."""
        settings.storage_driver = "memcached"

        with pytest.raises(UnsupportedStorageDriverError, match="memcached"):
            create_cache_storage(settings, content)
