from crm.models.user import User
from crm.models.contact import Contact
from crm.models.audience import Audience, AudienceContact
from crm.models.template import EmailTemplate
from crm.models.campaign import Campaign
from crm.models.campaign_log import CampaignLog
from crm.models.background_job_log import BackgroundJobLog
from crm.models.notification import Notification
from crm.models.failed_job import FailedJob

__all__ = [
    "User",
    "Contact",
    "Audience",
    "AudienceContact",
    "EmailTemplate",
    "Campaign",
    "CampaignLog",
    "BackgroundJobLog",
    "Notification",
    "FailedJob",
]
