"""Deferred refresh and warm jobs."""

from pagecache.jobs.descriptors import (
    REFRESH_CACHE_TASK,
    WARM_CACHE_TASK,
    RefreshCacheJob,
    WarmCacheJob,
)
from pagecache.jobs.queue import (
    InMemoryJobQueue,
    Job,
    JobQueue,
    JobStatus,
    RedisJobQueue,
    create_job_queue,
)
from pagecache.jobs.tasks import register_cache_handlers, warm_urls
from pagecache.jobs.worker import JobHandler, JobWorker, WorkerConfig

__all__ = [
    "REFRESH_CACHE_TASK",
    "WARM_CACHE_TASK",
    "InMemoryJobQueue",
    "Job",
    "JobHandler",
    "JobQueue",
    "JobStatus",
    "JobWorker",
    "RedisJobQueue",
    "RefreshCacheJob",
    "WarmCacheJob",
    "WorkerConfig",
    "create_job_queue",
    "register_cache_handlers",
    "warm_urls",
]
