from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from functools import lru_cache

from redis import Redis
from rq import Queue, Retry

from .config import Settings, get_settings
from .logging import get_logger


class RetryableJobError(Exception):
    """Raised by a job attempt that failed but still has retries left."""


class BaseJobBackend(ABC):
    @abstractmethod
    async def enqueue(self, job_id: str) -> None: ...


class ImmediateJobBackend(BaseJobBackend):
    """Runs the job in a worker thread before returning; retries happen back to back."""

    def __init__(self, max_retries: int):
        self.max_retries = max_retries
        self.logger = get_logger(component="job_backend", backend="immediate")

    async def enqueue(self, job_id: str) -> None:
        from app.workers.tasks import run_job

        for attempt in range(self.max_retries + 1):
            try:
                await asyncio.to_thread(run_job, job_id)
                return
            except RetryableJobError:
                self.logger.info("job_retrying", job_id=job_id, attempt=attempt + 1)
        self.logger.warning("job_retries_exhausted", job_id=job_id)


class RQJobBackend(BaseJobBackend):
    def __init__(self, queue: Queue, settings: Settings):
        self.queue = queue
        self.settings = settings

    async def enqueue(self, job_id: str) -> None:  # pragma: no cover - exercised via worker
        from app.workers.tasks import run_job

        retry = None
        if self.settings.job_max_retries:
            retry = Retry(max=self.settings.job_max_retries, interval=self.settings.retry_intervals())
        await asyncio.to_thread(self.queue.enqueue, run_job, job_id, retry=retry, job_timeout=-1)


@lru_cache()
def get_job_backend() -> BaseJobBackend:
    settings = get_settings()
    backend = settings.normalized_job_backend
    if backend == "immediate":
        return ImmediateJobBackend(max_retries=settings.job_max_retries)
    if backend == "rq":  # pragma: no cover - requires redis
        connection = Redis.from_url(settings.redis_url)
        return RQJobBackend(Queue(settings.job_queue_name, connection=connection), settings)
    raise ValueError(f"Unsupported job backend: {settings.job_queue_backend}")


__all__ = ["BaseJobBackend", "ImmediateJobBackend", "RQJobBackend", "RetryableJobError", "get_job_backend"]
