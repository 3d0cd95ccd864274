"""Fire-and-forget hand-off of campaign runs, in-process or through the arq queue."""

import asyncio
from typing import Protocol
from urllib.parse import urlparse

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from crm.core.logging import get_logger
from crm.services.executor import CampaignExecutor

log = get_logger(__name__)

RUN_CAMPAIGN_FUNCTION = "run_campaign"


class Dispatcher(Protocol):
    async def dispatch(self, job_id: str, campaign_id: str) -> None:
        """Hand a run off; returns before the run does."""
        ...

    async def close(self) -> None:
        ...


class TaskDispatcher:
    """One asyncio task per run. Tasks are held until done so they are not collected mid-run."""

    def __init__(self, executor: CampaignExecutor) -> None:
        self.executor = executor
        self._tasks: set[asyncio.Task] = set()

    async def dispatch(self, job_id: str, campaign_id: str) -> None:
        task = asyncio.create_task(
            self.executor.run(job_id, campaign_id),
            name=f"campaign_run:{job_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        log.info("campaign_run_dispatched", job_id=job_id, campaign_id=campaign_id, mode="inline")

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            log.warning("campaign_run_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            log.error("campaign_run_task_failed", task=task.get_name(), error=str(exc))

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for runs already dispatched (shutdown, tests)."""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)

    async def close(self) -> None:
        await self.drain()


def redis_settings_from_url(url: str) -> RedisSettings:
    u = urlparse(url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path and u.path != "/" else 0,
    )


class ArqDispatcher:
    """Enqueue runs for the worker. The arq job id is derived from the job log id, so re-dispatch is a no-op."""

    def __init__(self, redis: ArqRedis | None = None, redis_settings: RedisSettings | None = None) -> None:
        self._redis = redis
        self._redis_settings = redis_settings or RedisSettings()
        self._owns_pool = redis is None

    async def _pool(self) -> ArqRedis:
        if self._redis is None:
            self._redis = await create_pool(self._redis_settings)
        return self._redis

    async def dispatch(self, job_id: str, campaign_id: str) -> None:
        pool = await self._pool()
        job = await pool.enqueue_job(
            RUN_CAMPAIGN_FUNCTION,
            job_id,
            campaign_id,
            _job_id=f"campaign_run:{job_id}",
        )
        if job is None:
            log.info("campaign_run_already_enqueued", job_id=job_id, campaign_id=campaign_id)
            return
        log.info("campaign_run_dispatched", job_id=job_id, campaign_id=campaign_id, mode="arq")

    async def close(self) -> None:
        if self._owns_pool and self._redis is not None:
            await self._redis.aclose()
            self._redis = None
