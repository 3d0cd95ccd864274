import asyncio

import pytest

from crm.services.dispatch import (
    RUN_CAMPAIGN_FUNCTION,
    ArqDispatcher,
    TaskDispatcher,
)

pytestmark = pytest.mark.asyncio


class SlowExecutor:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.started: list[str] = []
        self.finished: list[str] = []
        self.release = asyncio.Event()
        self.fail_for = fail_for or set()

    async def run(self, job_id: str, campaign_id: str):
        self.started.append(job_id)
        await self.release.wait()
        if job_id in self.fail_for:
            raise RuntimeError("run crashed")
        self.finished.append(job_id)


class FakeArqPool:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.job_ids: set[str] = set()

    async def enqueue_job(self, function, *args, _job_id=None):
        self.calls.append((function, args, _job_id))
        if _job_id in self.job_ids:
            return None
        self.job_ids.add(_job_id)
        return object()

    async def aclose(self) -> None:
        raise AssertionError("borrowed pool must not be closed")


async def test_dispatch_returns_before_run_finishes():
    executor = SlowExecutor()
    dispatcher = TaskDispatcher(executor)

    await dispatcher.dispatch("job-1", "camp-1")
    await asyncio.sleep(0)

    assert executor.started == ["job-1"]
    assert executor.finished == []
    assert dispatcher.in_flight == 1

    executor.release.set()
    await dispatcher.drain(timeout=1)
    assert executor.finished == ["job-1"]
    assert dispatcher.in_flight == 0


async def test_failed_run_does_not_reach_dispatcher():
    executor = SlowExecutor(fail_for={"job-bad"})
    dispatcher = TaskDispatcher(executor)

    await dispatcher.dispatch("job-bad", "camp-1")
    await dispatcher.dispatch("job-ok", "camp-2")
    executor.release.set()
    await dispatcher.close()

    assert executor.finished == ["job-ok"]
    assert dispatcher.in_flight == 0


async def test_arq_dispatch_uses_job_log_id_for_dedup():
    pool = FakeArqPool()
    dispatcher = ArqDispatcher(redis=pool)

    await dispatcher.dispatch("job-1", "camp-1")
    await dispatcher.dispatch("job-1", "camp-1")
    await dispatcher.close()

    assert pool.calls == [
        (RUN_CAMPAIGN_FUNCTION, ("job-1", "camp-1"), "campaign_run:job-1"),
        (RUN_CAMPAIGN_FUNCTION, ("job-1", "camp-1"), "campaign_run:job-1"),
    ]
    assert pool.job_ids == {"campaign_run:job-1"}

