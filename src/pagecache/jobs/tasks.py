"""Job task handlers for refresh and warm jobs.

- refresh_cache: delete the cached pages of a refresh job, then notify
  observers and submit a warm job for the affected URLs
- warm_cache: request URLs so that the application renders and caches them

Example:
    from pagecache.jobs.tasks import register_cache_handlers

    worker = JobWorker(queue)
    register_cache_handlers(worker, invalidation, settings)
    await worker.run()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import httpx

from pagecache.jobs.descriptors import (
    REFRESH_CACHE_TASK,
    WARM_CACHE_TASK,
    RefreshCacheJob,
    WarmCacheJob,
)
from pagecache.jobs.worker import JobHandler, JobWorker

if TYPE_CHECKING:
    from pagecache.config import Settings
    from pagecache.jobs.queue import Job
    from pagecache.services.invalidation import InvalidationService

logger = logging.getLogger(__name__)

WARMER_USER_AGENT = "pagecache-warmer"

# Errors kept in a warm job result
MAX_REPORTED_ERRORS = 10


def refresh_cache_handler(invalidation: InvalidationService) -> JobHandler:
    """Build the handler for refresh_cache jobs."""

    async def handle_refresh_cache(job: Job) -> dict[str, Any]:
        """Delete the pages listed in a refresh job.

        Payload:
            cache_ids: Cache IDs of stale pages
            element_ids: Elements that changed
            element_types: Types whose element queries are stale

        Returns:
            urls: Number of page URLs refreshed
        """
        refresh = RefreshCacheJob.from_payload(job.payload)
        urls = await invalidation.execute_refresh(refresh)
        return {"urls": len(urls)}

    return handle_refresh_cache


async def warm_urls(
    urls: list[str],
    concurrency: int = 1,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Request every URL, at most ``concurrency`` at a time.

    Returns:
        success: Number of URLs that answered with a non-error status
        failed: Number of URLs that failed
        errors: The first few failure messages
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))
    errors: list[str] = []
    success = 0

    async def fetch(client: httpx.AsyncClient, url: str) -> None:
        nonlocal success
        async with semaphore:
            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(f"Warming {url} failed: {e}")
                errors.append(f"{url}: {e}")
                return
            success += 1

    async with httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        follow_redirects=True,
        headers={"User-Agent": WARMER_USER_AGENT},
    ) as client:
        await asyncio.gather(*(fetch(client, url) for url in urls))

    logger.info(f"Warmed {success} of {len(urls)} URLs")
    return {
        "success": success,
        "failed": len(errors),
        "errors": errors[:MAX_REPORTED_ERRORS],
    }


def warm_cache_handler(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> JobHandler:
    """Build the handler for warm_cache jobs."""

    async def handle_warm_cache(job: Job) -> dict[str, Any]:
        warm = WarmCacheJob.from_payload(job.payload)
        return await warm_urls(
            warm.urls,
            concurrency=warm.concurrency,
            timeout=settings.warm_request_timeout,
            transport=transport,
        )

    return handle_warm_cache


def register_cache_handlers(
    worker: JobWorker,
    invalidation: InvalidationService,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Register the refresh and warm handlers with a worker."""
    worker.register_handler(REFRESH_CACHE_TASK, refresh_cache_handler(invalidation))
    worker.register_handler(WARM_CACHE_TASK, warm_cache_handler(settings, transport))
