"""Tests for the job worker and the cache task handlers."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from pagecache.config import Settings
from pagecache.core.elements import Element
from pagecache.core.site_uri import SiteUri
from pagecache.jobs.queue import InMemoryJobQueue, Job, JobStatus
from pagecache.jobs.tasks import WARMER_USER_AGENT, register_cache_handlers, warm_urls
from pagecache.jobs.worker import JobWorker, WorkerConfig
from pagecache.services.caching import CacheService
from pagecache.services.invalidation import InvalidationService
from pagecache.storage.file import FileCacheStorage


class TestJobWorker:
    """Tests for JobWorker dispatch."""

    @pytest.fixture
    def mock_queue(self) -> AsyncMock:
        """Create mock job queue."""
        queue = AsyncMock()
        queue.complete_job = AsyncMock()
        queue.fail_job = AsyncMock()
        return queue

    @pytest.fixture
    def worker(self, mock_queue: AsyncMock) -> JobWorker:
        return JobWorker(queue=mock_queue)

    def test_default_config(self) -> None:
        """Default config has expected values."""
        config = WorkerConfig()

        assert config.name == "default"
        assert config.batch_size == 1
        assert config.poll_interval == 1.0

    def test_register_handler(self, worker: JobWorker) -> None:
        """Registered handlers are listed by task."""

        async def handler(job: Job) -> dict:
            return {}

        worker.register_handler("refresh_cache", handler)

        assert worker.tasks == ["refresh_cache"]

    async def test_process_job_success(self, worker: JobWorker, mock_queue: AsyncMock) -> None:
        """A successful handler completes the job with its result."""
        job = Job(id="job-1", task="refresh_cache", payload={})

        async def handler(j: Job) -> dict:
            return {"urls": 3}

        worker.register_handler("refresh_cache", handler)
        await worker.process_job(job)

        mock_queue.complete_job.assert_awaited_once_with("job-1", {"urls": 3})

    async def test_process_job_failure(self, worker: JobWorker, mock_queue: AsyncMock) -> None:
        """A failing handler fails the job for retry."""
        job = Job(id="job-1", task="refresh_cache", payload={})

        async def handler(j: Job) -> dict:
            raise RuntimeError("database is locked")

        worker.register_handler("refresh_cache", handler)
        await worker.process_job(job)

        mock_queue.fail_job.assert_awaited_once_with("job-1", "database is locked", retry=True)

    async def test_process_unknown_task(self, worker: JobWorker, mock_queue: AsyncMock) -> None:
        """Unknown tasks fail without retry."""
        await worker.process_job(Job(id="job-1", task="export", payload={}))

        mock_queue.fail_job.assert_awaited_once()
        assert mock_queue.fail_job.call_args.kwargs["retry"] is False


class TestWarmUrls:
    """Tests for warming URLs over HTTP."""

    async def test_counts_failures(self) -> None:
        """Error statuses and connection errors are counted as failures."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/down":
                raise httpx.ConnectError("refused", request=request)
            if request.url.path == "/broken":
                return httpx.Response(500)
            return httpx.Response(200, text="<html></html>")

        result = await warm_urls(
            [
                "https://example.com/",
                "https://example.com/broken",
                "https://example.com/down",
            ],
            transport=httpx.MockTransport(handler),
        )

        assert result["success"] == 1
        assert result["failed"] == 2
        assert len(result["errors"]) == 2

    async def test_concurrency_limit(self) -> None:
        """No more than the configured number of requests run at once."""
        active = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return httpx.Response(200)

        urls = [f"https://example.com/page-{i}" for i in range(8)]
        result = await warm_urls(urls, concurrency=2, transport=httpx.MockTransport(handler))

        assert result["success"] == 8
        assert peak == 2

    async def test_user_agent(self) -> None:
        """Warm requests identify themselves."""
        agents: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            agents.append(request.headers["user-agent"])
            return httpx.Response(200)

        await warm_urls(["https://example.com/"], transport=httpx.MockTransport(handler))

        assert agents == [WARMER_USER_AGENT]


class TestCacheHandlers:
    """Tests for the refresh and warm handlers run by a worker."""

    async def test_refresh_then_warm(
        self,
        invalidation: InvalidationService,
        cache_service: CacheService,
        storage: FileCacheStorage,
        settings: Settings,
        queue: InMemoryJobQueue,
    ) -> None:
        """A changed element's pages are deleted, then requested again."""
        settings.warm_cache_automatically = True
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200)

        worker = JobWorker(queue)
        register_cache_handlers(
            worker, invalidation, settings, transport=httpx.MockTransport(handler)
        )
        await cache_service.save_output(SiteUri(site_id=1, uri="blog"), b"old", element_ids=[42])

        await invalidation.add_element(Element(id=42, type="entry"))
        processed = await worker.run_once()

        assert processed == 2
        assert await storage.get(SiteUri(site_id=1, uri="blog")) == b""
        assert requested == ["https://example.com/blog"]

    async def test_refresh_result(
        self,
        invalidation: InvalidationService,
        cache_service: CacheService,
        settings: Settings,
        queue: InMemoryJobQueue,
    ) -> None:
        """The refresh job result reports the number of URLs refreshed."""
        worker = JobWorker(queue)
        register_cache_handlers(worker, invalidation, settings)
        await cache_service.save_output(SiteUri(site_id=1, uri="blog"), b"old", element_ids=[42])
        await invalidation.add_element(Element(id=42, type="entry"))
        job_id = queue.pending_jobs()[0].id

        await worker.run_once()

        job = await queue.get_job(job_id)
        assert job is not None
        assert job.status == JobStatus.COMPLETED
        assert job.result == {"urls": 1}
