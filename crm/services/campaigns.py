"""Campaign management for agents: create, update, pause/resume, logs, run now."""

import re
from datetime import datetime, timezone
from typing import Any

from crm.core.exceptions import BadRequestError, NotFoundError
from crm.core.logging import get_logger
from crm.models.background_job_log import BackgroundJobLog
from crm.models.campaign import Campaign
from crm.services.dispatch import Dispatcher
from crm.stores.audiences import AudienceStore
from crm.stores.campaign_logs import CampaignLogStore
from crm.stores.campaigns import EDITABLE_STATUSES, CampaignStore
from crm.stores.contacts import ContactStore
from crm.stores.jobs import JobLogStore
from crm.stores.templates import TemplateStore

log = get_logger(__name__)

SCHEDULE_TYPES = ("once", "recurring")
RECURRENCES = ("daily", "weekly", "monthly")
TIME_OF_DAY_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class CampaignService:
    def __init__(
        self,
        campaigns: CampaignStore,
        templates: TemplateStore,
        audiences: AudienceStore,
        contacts: ContactStore,
        logs: CampaignLogStore,
        jobs: JobLogStore,
        dispatcher: Dispatcher,
    ) -> None:
        self.campaigns = campaigns
        self.templates = templates
        self.audiences = audiences
        self.contacts = contacts
        self.logs = logs
        self.jobs = jobs
        self.dispatcher = dispatcher

    async def create_campaign(
        self,
        org_id: str,
        user_id: str,
        name: str,
        template_id: str,
        schedule_type: str,
        scheduled_at: datetime,
        audience_ids: list[str] | None = None,
        contact_id: str | None = None,
        recurrence: str | None = None,
        recurrence_day_of_week: int | None = None,
        recurrence_day_of_month: int | None = None,
        recurrence_time: str | None = None,
        draft: bool = False,
    ) -> Campaign:
        audience_ids = [a for a in (audience_ids or []) if a]
        if not name or not template_id or not schedule_type:
            raise BadRequestError("Name, template_id, and schedule_type are required")
        if schedule_type not in SCHEDULE_TYPES:
            raise BadRequestError("schedule_type must be 'once' or 'recurring'")
        if bool(audience_ids) == bool(contact_id):
            raise BadRequestError("Must provide either audience_ids or contact_id, not both")

        if not await self.templates.find_by_id(template_id, org_id):
            raise NotFoundError("Email template not found")
        for audience_id in audience_ids:
            if not await self.audiences.find_by_id(audience_id, org_id):
                raise NotFoundError(f"Audience not found: {audience_id}")
        if contact_id and not await self.contacts.find_by_id(contact_id, org_id):
            raise NotFoundError("Contact not found")

        if schedule_type == "recurring":
            if recurrence is None:
                raise BadRequestError("recurrence is required for recurring campaigns")
            if recurrence not in RECURRENCES:
                raise BadRequestError("recurrence must be 'daily', 'weekly', or 'monthly'")
        if recurrence_day_of_week is not None and not 0 <= recurrence_day_of_week <= 6:
            raise BadRequestError("recurrence_day_of_week must be between 0 (Sunday) and 6 (Saturday)")
        if recurrence_day_of_month is not None and not 1 <= recurrence_day_of_month <= 31:
            raise BadRequestError("recurrence_day_of_month must be between 1 and 31")
        if recurrence_time is not None and not TIME_OF_DAY_RE.match(recurrence_time):
            raise BadRequestError("Invalid recurrence_time format. Use HH:MM")

        campaign = await self.campaigns.create(
            organization_id=org_id,
            created_by=user_id,
            name=name,
            template_id=template_id,
            contact_id=contact_id or None,
            audience_ids=audience_ids,
            schedule_type=schedule_type,
            scheduled_at=to_naive_utc(scheduled_at),
            recurrence=recurrence if schedule_type == "recurring" else None,
            recurrence_day_of_week=recurrence_day_of_week,
            recurrence_day_of_month=recurrence_day_of_month,
            recurrence_time=recurrence_time,
            status="draft" if draft else "scheduled",
        )
        log.info("campaign_created", campaign_id=str(campaign.id), org_id=org_id, schedule_type=schedule_type)
        return campaign

    async def list_campaigns(
        self,
        org_id: str,
        status: str | None,
        page: int,
        limit: int,
    ) -> tuple[list[Campaign], int]:
        return await self.campaigns.find_all_by_org(org_id, status or None, page, limit)

    async def get_campaign(self, campaign_id: str, org_id: str) -> Campaign:
        campaign = await self.campaigns.find_by_id(campaign_id, org_id)
        if campaign is None:
            raise NotFoundError("Campaign not found")
        return campaign

    async def update_campaign(
        self,
        campaign_id: str,
        org_id: str,
        name: str | None = None,
        scheduled_at: datetime | None = None,
    ) -> Campaign:
        campaign = await self.get_campaign(campaign_id, org_id)
        if campaign.status not in EDITABLE_STATUSES:
            raise BadRequestError("Cannot update a campaign that is running, paused, or completed")
        updated = await self.campaigns.update(
            campaign_id,
            org_id,
            name=name,
            scheduled_at=to_naive_utc(scheduled_at) if scheduled_at is not None else None,
        )
        if not updated:
            # claimed, paused or deleted since the read above
            await self.get_campaign(campaign_id, org_id)
            raise BadRequestError("Cannot update a campaign that is running, paused, or completed")
        return await self.get_campaign(campaign_id, org_id)

    async def delete_campaign(self, campaign_id: str, org_id: str) -> None:
        campaign = await self.get_campaign(campaign_id, org_id)
        if campaign.status == "running" or not await self.campaigns.delete(campaign_id, org_id):
            await self.get_campaign(campaign_id, org_id)
            raise BadRequestError("Cannot delete a running campaign. Pause it first.")
        log.info("campaign_deleted", campaign_id=campaign_id, org_id=org_id)

    async def pause_campaign(self, campaign_id: str, org_id: str) -> None:
        """Stops future dispatch only; a run already in flight finishes."""
        campaign = await self.get_campaign(campaign_id, org_id)
        if campaign.status not in ("scheduled", "running"):
            raise BadRequestError("Can only pause scheduled or running campaigns")
        if not await self.campaigns.transition(campaign_id, ["scheduled", "running"], "paused"):
            raise BadRequestError("Can only pause scheduled or running campaigns")

    async def resume_campaign(self, campaign_id: str, org_id: str) -> None:
        campaign = await self.get_campaign(campaign_id, org_id)
        if campaign.status != "paused":
            raise BadRequestError("Can only resume paused campaigns")
        if not await self.campaigns.transition(campaign_id, ["paused"], "scheduled"):
            raise BadRequestError("Can only resume paused campaigns")

    async def get_logs(self, campaign_id: str, org_id: str, page: int, limit: int) -> dict[str, Any]:
        await self.get_campaign(campaign_id, org_id)
        items, total = await self.logs.find_by_campaign(campaign_id, page, limit)
        stats = await self.logs.stats_by_campaign(campaign_id)
        return {"logs": items, "total": total, "stats": stats}

    async def run_now(self, campaign_id: str, org_id: str) -> BackgroundJobLog:
        """Dispatch the executor immediately instead of waiting for the next tick."""
        campaign = await self.get_campaign(campaign_id, org_id)
        if campaign.schedule_type == "once" and campaign.last_run_at is not None:
            raise BadRequestError("One-time campaign already executed")
        if campaign.status != "scheduled":
            raise BadRequestError("Only scheduled campaigns can be run now")
        job = await self.jobs.create("campaign_run", org_id, campaign_id)
        await self.dispatcher.dispatch(str(job.id), campaign_id)
        log.info("campaign_run_requested", campaign_id=campaign_id, job_id=str(job.id))
        return job
