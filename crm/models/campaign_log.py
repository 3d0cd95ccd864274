from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field

DeliveryStatus = Literal["queued", "sent", "failed"]


class CampaignLog(Document):
    """One send attempt for one recipient of a campaign run."""

    campaign_id: str
    contact_id: str
    recipient_email: str
    subject: str = ""
    status: DeliveryStatus = "queued"
    error_message: str = ""
    sent_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "campaign_log"
        indexes = [
            [("campaign_id", 1), ("created_at", -1)],
            [("campaign_id", 1), ("status", 1)],
        ]
