"""Background worker for refresh and warm jobs.

Example:
    worker = JobWorker(queue)
    register_cache_handlers(worker, invalidation, settings)

    # Run worker (blocks until shutdown)
    await worker.run()

    # Or drain the queue once, e.g. from cron
    await worker.run_once()
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pagecache.jobs.queue import Job, JobQueue
from pagecache.observability.logging import LogContext

logger = logging.getLogger(__name__)

# Type alias for job handlers
JobHandler = Callable[[Job], Awaitable[dict[str, Any] | None]]


@dataclass
class WorkerConfig:
    """Worker configuration."""

    name: str = "default"
    batch_size: int = 1
    poll_interval: float = 1.0
    claim_timeout: int = 5


class JobWorker:
    """Claims jobs from a queue and dispatches them to registered handlers.

    Failed jobs are handed back to the queue, which retries them or moves
    them to its dead letter queue.
    """

    def __init__(self, queue: JobQueue, config: WorkerConfig | None = None) -> None:
        self.queue = queue
        self.config = config or WorkerConfig()
        self._handlers: dict[str, JobHandler] = {}
        self._running = False
        self._tasks: set[asyncio.Task[None]] = set()

    def register_handler(self, task: str, handler: JobHandler) -> None:
        """Register a handler for a task type."""
        self._handlers[task] = handler
        logger.info(f"Registered handler for task: {task}")

    @property
    def tasks(self) -> list[str]:
        return list(self._handlers)

    async def start(self) -> None:
        """Start the worker and install signal handlers for graceful shutdown."""
        self._running = True

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler)

        logger.info(f"Worker started: {self.config.name}")

    async def stop(self) -> None:
        """Stop the worker, waiting for in-flight jobs."""
        self._running = False

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        logger.info(f"Worker stopped: {self.config.name}")

    def _signal_handler(self) -> None:
        logger.info("Received shutdown signal")
        self._running = False

    async def run(self) -> None:
        """Run the worker until shutdown."""
        await self.start()

        try:
            while self._running:
                try:
                    async for job in self.queue.claim_jobs(
                        batch_size=self.config.batch_size,
                        timeout=self.config.claim_timeout,
                    ):
                        task = asyncio.create_task(self.process_job(job))
                        self._tasks.add(task)
                        task.add_done_callback(self._tasks.discard)
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.error(f"Error claiming jobs: {e}")

                await asyncio.sleep(self.config.poll_interval)
        finally:
            await self.stop()

    async def process_job(self, job: Job) -> None:
        """Run the handler for a single claimed job."""
        handler = self._handlers.get(job.task)

        if handler is None:
            logger.error(f"No handler for task: {job.task}")
            await self.queue.fail_job(job.id, f"Unknown task type: {job.task}", retry=False)
            return

        with LogContext(job_id=job.id):
            try:
                logger.info(f"Processing job: {job.id} ({job.task})")
                result = await handler(job)
                await self.queue.complete_job(job.id, result)
            except Exception as e:
                logger.exception(f"Job failed: {job.id}")
                await self.queue.fail_job(job.id, str(e), retry=True)

    async def run_once(self) -> int:
        """Process pending jobs until the queue is empty.

        Returns:
            Number of jobs processed
        """
        count = 0
        while True:
            claimed = 0
            async for job in self.queue.claim_jobs(batch_size=self.config.batch_size, timeout=1):
                await self.process_job(job)
                claimed += 1
            if claimed == 0:
                return count
            count += claimed
