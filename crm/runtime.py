"""Wiring: one place that builds stores and services and hands them to each other."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from crm.core.config import Settings
from crm.services.campaigns import CampaignService
from crm.services.dispatch import ArqDispatcher, Dispatcher, TaskDispatcher, redis_settings_from_url
from crm.services.executor import CampaignExecutor
from crm.services.mailer import EmailSender, get_email_sender
from crm.services.notifications import NotificationService
from crm.services.reconcile import reconcile_stuck_campaigns
from crm.services.scheduler import CampaignScheduler
from crm.stores.audiences import AudienceStore
from crm.stores.campaign_logs import CampaignLogStore
from crm.stores.campaigns import CampaignStore
from crm.stores.contacts import ContactStore
from crm.stores.jobs import JobLogStore
from crm.stores.notifications import NotificationStore
from crm.stores.templates import TemplateStore


@dataclass
class Runtime:
    settings: Settings
    campaigns: CampaignStore
    logs: CampaignLogStore
    jobs: JobLogStore
    notification_store: NotificationStore
    executor: CampaignExecutor
    dispatcher: Dispatcher
    scheduler: CampaignScheduler
    campaign_service: CampaignService

    async def reconcile(self) -> dict[str, int]:
        return await reconcile_stuck_campaigns(
            self.campaigns,
            self.jobs,
            datetime.utcnow(),
            timedelta(minutes=self.settings.stale_running_after_minutes),
        )

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.dispatcher.close()


def build_runtime(
    settings: Settings,
    dispatcher: Dispatcher | None = None,
    sender: EmailSender | None = None,
) -> Runtime:
    audiences = AudienceStore()
    campaigns = CampaignStore(audiences)
    contacts = ContactStore()
    templates = TemplateStore()
    logs = CampaignLogStore()
    jobs = JobLogStore()
    notification_store = NotificationStore()

    executor = CampaignExecutor(
        campaigns=campaigns,
        templates=templates,
        contacts=contacts,
        logs=logs,
        jobs=jobs,
        sender=sender or get_email_sender(settings),
        notifications=NotificationService(notification_store),
    )
    if dispatcher is None:
        if settings.scheduler_dispatch == "arq":
            dispatcher = ArqDispatcher(redis_settings=redis_settings_from_url(settings.redis_url))
        else:
            dispatcher = TaskDispatcher(executor)

    scheduler = CampaignScheduler(
        campaigns=campaigns,
        jobs=jobs,
        dispatcher=dispatcher,
        record_ticks=settings.scheduler_record_ticks,
    )
    campaign_service = CampaignService(
        campaigns=campaigns,
        templates=templates,
        audiences=audiences,
        contacts=contacts,
        logs=logs,
        jobs=jobs,
        dispatcher=dispatcher,
    )
    return Runtime(
        settings=settings,
        campaigns=campaigns,
        logs=logs,
        jobs=jobs,
        notification_store=notification_store,
        executor=executor,
        dispatcher=dispatcher,
        scheduler=scheduler,
        campaign_service=campaign_service,
    )
