"""Job queues for deferred refresh and warm work.

The invalidation service never deletes or fetches pages inline; it submits
jobs and returns. Two queue backends are provided:

- RedisJobQueue: distributed queue with atomic claiming via BRPOPLPUSH,
  retries and a dead letter queue
- InMemoryJobQueue: single-process queue for small installs and tests

Example:
    queue = RedisJobQueue(redis_url="redis://localhost:6379/0")
    job_id = await queue.submit("refresh_cache", {"cache_ids": [5, 9]})

    async for job in queue.claim_jobs():
        result = await process_job(job)
        await queue.complete_job(job.id, result)
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, TypeVar, cast
from uuid import uuid4

import orjson
import redis.asyncio as redis

if TYPE_CHECKING:
    from redis.asyncio import Redis

T = TypeVar("T")


def _await_redis(result: Awaitable[T] | T) -> Awaitable[T]:
    """Cast redis-py async results to an awaitable for mypy."""
    return cast(Awaitable[T], result)


logger = logging.getLogger(__name__)

# Redis key prefixes
JOB_PREFIX = "pagecache:job:"
QUEUE_PENDING = "pagecache:jobs:pending"
QUEUE_PROCESSING = "pagecache:jobs:processing"
QUEUE_DLQ = "pagecache:jobs:dlq"

# Default configuration
DEFAULT_JOB_TTL = 86400 * 7  # 7 days
DEFAULT_RESULT_TTL = 86400  # 24 hours
DEFAULT_MAX_RETRIES = 3


class JobStatus(str, Enum):
    """Job execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD = "dead"  # Moved to DLQ after max retries


@dataclass
class Job:
    """Job definition with metadata and state."""

    id: str
    task: str
    payload: dict[str, Any]
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    attempts: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES

    def to_dict(self) -> dict[str, Any]:
        """Serialize job to dictionary."""
        return {
            "id": self.id,
            "task": self.task,
            "payload": self.payload,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "result": self.result,
            "error": self.error,
            "attempts": self.attempts,
            "max_retries": self.max_retries,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        """Deserialize job from dictionary."""
        return cls(
            id=data["id"],
            task=data["task"],
            payload=data["payload"],
            status=JobStatus(data["status"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            started_at=(
                datetime.fromisoformat(data["started_at"]) if data.get("started_at") else None
            ),
            completed_at=(
                datetime.fromisoformat(data["completed_at"]) if data.get("completed_at") else None
            ),
            result=data.get("result"),
            error=data.get("error"),
            attempts=data.get("attempts", 0),
            max_retries=data.get("max_retries", DEFAULT_MAX_RETRIES),
        )


class JobQueue(ABC):
    """Job submission and claiming interface."""

    @abstractmethod
    async def submit(
        self,
        task: str,
        payload: dict[str, Any] | None = None,
        max_retries: int | None = None,
    ) -> str:
        """Submit a job and return its ID."""
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None: ...

    @abstractmethod
    def claim_jobs(self, batch_size: int = 1, timeout: int | None = None) -> AsyncIterator[Job]:
        """Claim up to batch_size pending jobs, marking them running."""
        ...

    @abstractmethod
    async def complete_job(self, job_id: str, result: dict[str, Any] | None = None) -> None: ...

    @abstractmethod
    async def fail_job(self, job_id: str, error: str, retry: bool = True) -> None: ...


class InMemoryJobQueue(JobQueue):
    """Single-process job queue.

    Jobs live in memory only; they are lost on restart.
    """

    def __init__(self, max_retries: int = DEFAULT_MAX_RETRIES) -> None:
        self.max_retries = max_retries
        self._jobs: dict[str, Job] = {}
        self._pending: deque[str] = deque()
        self._dead: list[str] = []
        self._available = asyncio.Event()

    async def submit(
        self,
        task: str,
        payload: dict[str, Any] | None = None,
        max_retries: int | None = None,
    ) -> str:
        job = Job(
            id=str(uuid4()),
            task=task,
            payload=payload or {},
            max_retries=max_retries if max_retries is not None else self.max_retries,
        )
        self._jobs[job.id] = job
        self._pending.append(job.id)
        self._available.set()
        logger.info(f"Job submitted: {job.id} ({task})")
        return job.id

    async def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    async def claim_jobs(
        self,
        batch_size: int = 1,
        timeout: int | None = None,
    ) -> AsyncIterator[Job]:
        for _ in range(batch_size):
            if not self._pending and timeout:
                self._available.clear()
                try:
                    await asyncio.wait_for(self._available.wait(), timeout=timeout)
                except TimeoutError:
                    break
            if not self._pending:
                break

            job = self._jobs[self._pending.popleft()]
            job.status = JobStatus.RUNNING
            job.started_at = datetime.now(timezone.utc)
            job.attempts += 1
            logger.info(f"Job claimed: {job.id} (attempt {job.attempts})")
            yield job

    async def complete_job(self, job_id: str, result: dict[str, Any] | None = None) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning(f"Job not found for completion: {job_id}")
            return
        job.status = JobStatus.COMPLETED
        job.completed_at = datetime.now(timezone.utc)
        job.result = result
        logger.info(f"Job completed: {job_id}")

    async def fail_job(self, job_id: str, error: str, retry: bool = True) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning(f"Job not found for failure: {job_id}")
            return

        job.error = error
        if retry and job.attempts < job.max_retries:
            job.status = JobStatus.PENDING
            self._pending.append(job_id)
            self._available.set()
            logger.info(
                f"Job queued for retry: {job_id} (attempt {job.attempts}/{job.max_retries})"
            )
        else:
            job.status = JobStatus.DEAD
            job.completed_at = datetime.now(timezone.utc)
            self._dead.append(job_id)
            logger.warning(f"Job moved to DLQ: {job_id}")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_jobs(self) -> list[Job]:
        """Pending jobs in submission order."""
        return [self._jobs[job_id] for job_id in self._pending]


class RedisJobQueue(JobQueue):
    """Redis-backed distributed job queue.

    Uses Redis lists for queue management:
    - LPUSH to add jobs
    - BRPOPLPUSH to atomically move jobs from pending to processing
    - Job state stored in separate keys
    """

    def __init__(
        self,
        redis_url: str | None = None,
        client: Redis | None = None,
        job_ttl: int = DEFAULT_JOB_TTL,
        result_ttl: int = DEFAULT_RESULT_TTL,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self.redis_url = redis_url
        self.job_ttl = job_ttl
        self.result_ttl = result_ttl
        self.max_retries = max_retries
        self._redis: Redis | None = client

    async def _get_redis(self) -> Redis:
        """Get Redis client, connecting if needed."""
        if self._redis is None:
            if self.redis_url is None:
                from pagecache.config import settings

                self.redis_url = settings.redis_url
            self._redis = redis.from_url(  # type: ignore[no-untyped-call]
                self.redis_url,
                decode_responses=False,
            )
            logger.info("Job queue connected to Redis")
        return self._redis

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    def _job_key(self, job_id: str) -> str:
        """Redis key for job data."""
        return f"{JOB_PREFIX}{job_id}"

    async def _store(self, job: Job, ttl: int) -> None:
        redis_client = await self._get_redis()
        await _await_redis(
            redis_client.set(self._job_key(job.id), orjson.dumps(job.to_dict()), ex=ttl)
        )

    async def submit(
        self,
        task: str,
        payload: dict[str, Any] | None = None,
        max_retries: int | None = None,
    ) -> str:
        """Submit a job to the queue.

        Args:
            task: Task name (e.g., "refresh_cache", "warm_cache")
            payload: Task-specific data
            max_retries: Override default max retries

        Returns:
            Job ID for tracking
        """
        redis_client = await self._get_redis()

        job = Job(
            id=str(uuid4()),
            task=task,
            payload=payload or {},
            max_retries=max_retries if max_retries is not None else self.max_retries,
        )

        await self._store(job, self.job_ttl)
        await _await_redis(redis_client.lpush(QUEUE_PENDING, job.id))

        logger.info(f"Job submitted: {job.id} ({task})")
        return job.id

    async def get_job(self, job_id: str) -> Job | None:
        redis_client = await self._get_redis()
        data = await redis_client.get(self._job_key(job_id))

        if data is None:
            return None

        return Job.from_dict(orjson.loads(data))

    async def claim_jobs(
        self,
        batch_size: int = 1,
        timeout: int | None = None,
    ) -> AsyncIterator[Job]:
        """Claim jobs from the queue for processing.

        Args:
            batch_size: Number of jobs to claim
            timeout: Block timeout in seconds (None blocks forever)
        """
        redis_client = await self._get_redis()
        timeout_sec = timeout if timeout is not None else 0

        for _ in range(batch_size):
            # Atomic pop from pending, push to processing
            job_id_bytes = cast(
                bytes | str | None,
                await _await_redis(
                    redis_client.brpoplpush(QUEUE_PENDING, QUEUE_PROCESSING, timeout=timeout_sec)
                ),
            )

            if job_id_bytes is None:
                break

            job_id = job_id_bytes.decode() if isinstance(job_id_bytes, bytes) else job_id_bytes
            job = await self.get_job(job_id)

            if job is None:
                # Job expired or deleted, remove from processing
                await _await_redis(redis_client.lrem(QUEUE_PROCESSING, 1, job_id))
                continue

            job.status = JobStatus.RUNNING
            job.started_at = datetime.now(timezone.utc)
            job.attempts += 1
            await self._store(job, self.job_ttl)

            logger.info(f"Job claimed: {job.id} (attempt {job.attempts})")
            yield job

    async def complete_job(self, job_id: str, result: dict[str, Any] | None = None) -> None:
        redis_client = await self._get_redis()
        job = await self.get_job(job_id)

        if job is None:
            logger.warning(f"Job not found for completion: {job_id}")
            return

        job.status = JobStatus.COMPLETED
        job.completed_at = datetime.now(timezone.utc)
        job.result = result

        # Shorter TTL for finished jobs
        await self._store(job, self.result_ttl)
        await _await_redis(redis_client.lrem(QUEUE_PROCESSING, 1, job_id))

        logger.info(f"Job completed: {job_id}")

    async def fail_job(self, job_id: str, error: str, retry: bool = True) -> None:
        redis_client = await self._get_redis()
        job = await self.get_job(job_id)

        if job is None:
            logger.warning(f"Job not found for failure: {job_id}")
            return

        job.error = error
        await _await_redis(redis_client.lrem(QUEUE_PROCESSING, 1, job_id))

        if retry and job.attempts < job.max_retries:
            job.status = JobStatus.PENDING
            await self._store(job, self.job_ttl)
            await _await_redis(redis_client.lpush(QUEUE_PENDING, job_id))
            logger.info(
                f"Job queued for retry: {job_id} (attempt {job.attempts}/{job.max_retries})"
            )
        else:
            job.status = JobStatus.DEAD
            job.completed_at = datetime.now(timezone.utc)
            await self._store(job, self.job_ttl)
            await _await_redis(redis_client.lpush(QUEUE_DLQ, job_id))
            logger.warning(f"Job moved to DLQ: {job_id}")


def create_job_queue(backend: str, redis_url: str | None = None) -> JobQueue:
    """Create a job queue for a configured backend name."""
    backend = backend.lower()
    if backend in {"memory", "inmemory", "in_memory"}:
        return InMemoryJobQueue()
    if backend == "redis":
        return RedisJobQueue(redis_url=redis_url)
    raise ValueError("Unsupported job_queue_backend. Supported values: memory, redis.")
