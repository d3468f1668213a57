"""Shared setup for CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pagecache.config import settings
from pagecache.jobs.queue import InMemoryJobQueue
from pagecache.observability.logging import configure_logging
from pagecache.runtime import Services, build_services, build_worker

T = TypeVar("T")


def run(command: Callable[[Services], Awaitable[T]], drain_jobs: bool = False) -> T:
    """Build the services, run a command against them and close them.

    With drain_jobs, jobs the command submitted to an in-memory queue are
    processed before returning; they would be lost with the process
    otherwise. Jobs on a Redis queue are left to the workers.
    """
    configure_logging(json_format=settings.log_json, level=settings.log_level)

    async def _run() -> T:
        services = build_services(settings)
        try:
            result = await command(services)
            if drain_jobs and isinstance(services.queue, InMemoryJobQueue):
                await build_worker(services).run_once()
            return result
        finally:
            await services.close()

    return asyncio.run(_run())
