"""
Campaign executor: runs one campaign end to end for one background job.

Guards run before anything is sent; each guard finalizes the job as failed
and returns. The scheduled -> running claim is atomic, so a campaign that was
dispatched twice is sent once.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from crm.core.logging import bind_job, get_logger
from crm.models.campaign import Campaign
from crm.services.mailer import EmailSender
from crm.services.notifications import NotificationService
from crm.services.rendering import contact_variables, substitute
from crm.stores.campaign_logs import CampaignLogStore
from crm.stores.campaigns import CampaignStore
from crm.stores.contacts import ContactStore
from crm.stores.jobs import JobLogStore
from crm.stores.templates import TemplateStore

log = get_logger(__name__)

MAX_ERROR_LENGTH = 500


@dataclass
class RunResult:
    job_id: str
    campaign_id: str
    ok: bool
    message: str = ""
    sent: int = 0
    failed: int = 0
    omitted: int = 0


def _error_text(exc: Exception) -> str:
    return (str(exc) or exc.__class__.__name__)[:MAX_ERROR_LENGTH]


class CampaignExecutor:
    def __init__(
        self,
        campaigns: CampaignStore,
        templates: TemplateStore,
        contacts: ContactStore,
        logs: CampaignLogStore,
        jobs: JobLogStore,
        sender: EmailSender,
        notifications: NotificationService,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.campaigns = campaigns
        self.templates = templates
        self.contacts = contacts
        self.logs = logs
        self.jobs = jobs
        self.sender = sender
        self.notifications = notifications
        self.clock = clock

    async def run(self, job_id: str, campaign_id: str) -> RunResult:
        bind_job(job_id, campaign_id)
        try:
            return await self._run(job_id, campaign_id)
        except Exception as e:
            log.exception("campaign_run_crashed", error=str(e))
            await self._mark_crashed(job_id, e)
            raise

    async def _mark_crashed(self, job_id: str, exc: Exception) -> None:
        try:
            await self.jobs.fail(job_id, f"Unexpected error: {_error_text(exc)}")
        except Exception as e:
            log.error("job_log_update_failed", error=str(e))

    async def _fail(self, job_id: str, campaign_id: str, message: str) -> RunResult:
        await self.jobs.fail(job_id, message)
        log.warning("campaign_run_rejected", reason=message)
        return RunResult(job_id=job_id, campaign_id=campaign_id, ok=False, message=message)

    async def _run(self, job_id: str, campaign_id: str) -> RunResult:
        await self.jobs.start(job_id)

        campaign = await self.campaigns.find_by_id_unscoped(campaign_id)
        if campaign is None:
            return await self._fail(job_id, campaign_id, "Campaign not found")
        if campaign.status == "completed":
            return await self._fail(job_id, campaign_id, "Campaign already completed")
        if not campaign.organization_id:
            return await self._fail(job_id, campaign_id, "Invalid organization_id")
        if campaign.schedule_type == "once" and campaign.last_run_at is not None:
            if campaign.status != "completed":
                await self.campaigns.update_status(campaign_id, "completed")
            return await self._fail(job_id, campaign_id, "One-time campaign already executed")

        if not await self.campaigns.claim_for_run(campaign_id):
            log.info("campaign_claim_lost", status=campaign.status)
            return await self._fail(job_id, campaign_id, "Campaign is not in a runnable state")

        template = await self.templates.find_by_id(campaign.template_id, campaign.organization_id)
        if template is None:
            await self.campaigns.update_status(campaign_id, "failed")
            return await self._fail(job_id, campaign_id, "Template not found")

        try:
            contact_ids = await self.campaigns.get_recipient_contact_ids(campaign)
        except Exception as e:
            log.exception("recipient_lookup_failed", error=str(e))
            await self.campaigns.update_status(campaign_id, "failed")
            return await self._fail(job_id, campaign_id, "Failed to get recipients")
        if not contact_ids:
            await self.campaigns.update_status(campaign_id, "completed")
            return await self._fail(job_id, campaign_id, "No recipients found")

        try:
            contacts = await self.contacts.find_by_ids(contact_ids, campaign.organization_id)
        except Exception as e:
            log.exception("contact_lookup_failed", error=str(e))
            await self.campaigns.update_status(campaign_id, "failed")
            return await self._fail(job_id, campaign_id, "Failed to fetch contact details")
        await self.jobs.set_total(job_id, len(contacts))

        result = RunResult(job_id=job_id, campaign_id=campaign_id, ok=True)
        for contact in contacts:
            if not contact.email:
                result.omitted += 1
                log.info("recipient_omitted", contact_id=str(contact.id), reason="no_email")
                continue
            variables = contact_variables(contact)
            subject = substitute(template.subject, variables)
            entry = await self.logs.create(campaign_id, str(contact.id), contact.email, subject)
            html_body = substitute(template.html_body, variables)
            text_body = substitute(template.plain_text_body, variables)
            try:
                await self.sender.send(contact.email, subject, html_body, text_body)
            except Exception as e:
                result.failed += 1
                await self.logs.update_status(str(entry.id), "failed", _error_text(e))
                log.warning("recipient_send_failed", contact_id=str(contact.id), error=str(e))
                continue
            await self.logs.update_status(str(entry.id), "sent")
            result.sent += 1

        await self._complete(campaign, result)
        return result

    async def _complete(self, campaign: Campaign, result: RunResult) -> None:
        campaign_id = str(campaign.id)
        next_status = "completed" if campaign.schedule_type == "once" else "scheduled"
        await self.campaigns.record_run(campaign_id, self.clock(), next_status)
        await self.jobs.set_processed(result.job_id, result.sent)
        await self.notifications.notify_campaign_sent(
            campaign.organization_id,
            campaign.created_by,
            campaign_id,
            result.sent,
        )
        await self.jobs.finish(result.job_id)
        log.info(
            "campaign_run_done",
            sent=result.sent,
            failed=result.failed,
            omitted=result.omitted,
            next_status=next_status,
        )
