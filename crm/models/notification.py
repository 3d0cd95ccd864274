from datetime import datetime

from beanie import Document
from pydantic import Field


class Notification(Document):
    organization_id: str
    user_id: str
    notification_type: str
    title: str
    message: str
    related_campaign_id: str | None = None
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "notification"
        indexes = [[("user_id", 1), ("is_read", 1), ("created_at", -1)]]
