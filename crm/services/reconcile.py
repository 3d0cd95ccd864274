"""Startup sweep for runs that died with the process that was executing them."""

from datetime import datetime, timedelta

from crm.core.logging import get_logger
from crm.stores.campaigns import CampaignStore
from crm.stores.jobs import JobLogStore

log = get_logger(__name__)

INTERRUPTED_MESSAGE = "Interrupted before completion"


async def reconcile_stuck_campaigns(
    campaigns: CampaignStore,
    jobs: JobLogStore,
    now: datetime,
    stale_after: timedelta,
) -> dict[str, int]:
    """
    Release campaigns left in running. Recurring campaigns go back to
    scheduled and wait for their next window; one-shot campaigns become failed
    because some recipients may already have been sent to.
    """
    before = now - stale_after
    stuck = await campaigns.find_stale_running(before)
    released = 0
    for campaign in stuck:
        target = "scheduled" if campaign.schedule_type == "recurring" else "failed"
        if await campaigns.transition(str(campaign.id), ["running"], target):
            released += 1
            log.warning("campaign_reconciled", campaign_id=str(campaign.id), to_status=target)
    jobs_failed = await jobs.fail_stale("campaign_run", before, INTERRUPTED_MESSAGE)
    if released or jobs_failed:
        log.info("reconcile_done", campaigns=released, jobs=jobs_failed)
    return {"campaigns": released, "jobs": jobs_failed}
