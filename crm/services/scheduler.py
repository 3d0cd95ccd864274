"""
Campaign scheduler: a periodic tick that finds due one-shot campaigns and
recurring campaigns whose window has opened, and dispatches a run for each.

The tick never waits for a run. recurrence_time is stored on campaigns but
not consulted here: a recurring campaign fires on the first tick of its
eligible day.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable

from crm.core.logging import get_logger
from crm.models.campaign import Campaign
from crm.services.dispatch import Dispatcher
from crm.stores.campaigns import CampaignStore
from crm.stores.jobs import JobLogStore

log = get_logger(__name__)

DAY = timedelta(hours=24)
WEEKLY_WINDOW = 7 * DAY
MONTHLY_WINDOW = 28 * DAY


def day_of_week(moment: datetime) -> int:
    """0 = Sunday .. 6 = Saturday."""
    return moment.isoweekday() % 7


def is_recurring_due(campaign: Campaign, now: datetime) -> bool:
    if campaign.last_run_at is None:
        return now > campaign.scheduled_at

    elapsed = now - campaign.last_run_at
    if campaign.recurrence == "daily":
        return elapsed >= DAY
    if campaign.recurrence == "weekly":
        if campaign.recurrence_day_of_week is None:
            return False
        return day_of_week(now) == campaign.recurrence_day_of_week and elapsed >= WEEKLY_WINDOW
    if campaign.recurrence == "monthly":
        if campaign.recurrence_day_of_month is None:
            return False
        return now.day == campaign.recurrence_day_of_month and elapsed >= MONTHLY_WINDOW
    return False


class CampaignScheduler:
    def __init__(
        self,
        campaigns: CampaignStore,
        jobs: JobLogStore,
        dispatcher: Dispatcher,
        clock: Callable[[], datetime] = datetime.utcnow,
        record_ticks: bool = False,
    ) -> None:
        self.campaigns = campaigns
        self.jobs = jobs
        self.dispatcher = dispatcher
        self.clock = clock
        self.record_ticks = record_ticks
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def tick(self, now: datetime | None = None) -> list[str]:
        """Dispatch every eligible campaign once; returns the dispatched campaign ids."""
        now = now or self.clock()
        dispatched: list[str] = []

        try:
            due = await self.campaigns.find_due_once_campaigns(now)
        except Exception as e:
            log.exception("scheduler_due_query_failed", error=str(e))
            return dispatched
        for campaign in due:
            campaign_id = str(campaign.id)
            if campaign.schedule_type == "once" and campaign.last_run_at is not None:
                log.info("scheduler_skip", campaign_id=campaign_id, reason="already_executed")
                continue
            if await self._dispatch(campaign):
                dispatched.append(campaign_id)

        try:
            recurring = await self.campaigns.find_active_recurring_campaigns()
        except Exception as e:
            log.exception("scheduler_recurring_query_failed", error=str(e))
            return dispatched
        for campaign in recurring:
            campaign_id = str(campaign.id)
            if not campaign.organization_id:
                log.info("scheduler_skip", campaign_id=campaign_id, reason="invalid_organization_id")
                continue
            if campaign.status == "completed":
                log.info("scheduler_skip", campaign_id=campaign_id, reason="completed")
                continue
            if campaign.status == "running":
                log.debug("scheduler_skip", campaign_id=campaign_id, reason="running")
                continue
            # a never-run recurring campaign also matches the due query
            if campaign_id in dispatched:
                continue
            if not is_recurring_due(campaign, now):
                continue
            if await self._dispatch(campaign):
                dispatched.append(campaign_id)

        if self.record_ticks:
            await self._record_tick(len(dispatched))
        log.info("scheduler_tick_done", dispatched=len(dispatched), at=now.isoformat())
        return dispatched

    async def _dispatch(self, campaign: Campaign) -> bool:
        campaign_id = str(campaign.id)
        try:
            job = await self.jobs.create("campaign_run", campaign.organization_id, campaign_id)
        except Exception as e:
            log.exception("job_create_failed", campaign_id=campaign_id, error=str(e))
            return False
        job_id = str(job.id)
        try:
            await self.dispatcher.dispatch(job_id, campaign_id)
        except Exception as e:
            log.exception("dispatch_failed", campaign_id=campaign_id, job_id=job_id, error=str(e))
            try:
                await self.jobs.fail(job_id, f"Dispatch failed: {e}")
            except Exception as fail_error:
                log.warning("job_fail_record_failed", job_id=job_id, error=str(fail_error))
            return False
        return True

    async def _record_tick(self, dispatched: int) -> None:
        try:
            job = await self.jobs.create("campaign_scheduler")
            job_id = str(job.id)
            await self.jobs.set_processed(job_id, dispatched)
            await self.jobs.finish(job_id)
        except Exception as e:
            log.warning("scheduler_tick_record_failed", error=str(e))

    async def run_forever(self, interval_seconds: float) -> None:
        """Tick immediately, then every interval until stop() is called."""
        log.info("scheduler_started", interval_seconds=interval_seconds)
        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception as e:
                log.exception("scheduler_tick_failed", error=str(e))
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass
        log.info("scheduler_stopped")

    def start(self, interval_seconds: float) -> asyncio.Task:
        self._stop.clear()
        self._task = asyncio.create_task(self.run_forever(interval_seconds), name="campaign_scheduler")
        return self._task

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
