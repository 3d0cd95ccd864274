from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field

ScheduleType = Literal["once", "recurring"]
Recurrence = Literal["daily", "weekly", "monthly"]
CampaignStatus = Literal["draft", "scheduled", "running", "paused", "completed", "failed"]


class Campaign(Document):
    organization_id: str
    created_by: str
    name: str
    template_id: str
    # exactly one of contact_id / audience_ids is set (checked on create)
    contact_id: str | None = None
    audience_ids: list[str] = Field(default_factory=list)
    schedule_type: ScheduleType = "once"
    scheduled_at: datetime
    recurrence: Recurrence | None = None
    recurrence_day_of_week: int | None = None  # 0 = Sunday .. 6 = Saturday
    recurrence_day_of_month: int | None = None  # 1..31
    recurrence_time: str | None = None  # "HH:MM"; stored, not used by the scheduler
    status: CampaignStatus = "scheduled"
    last_run_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "campaign"
        indexes = [
            [("status", 1), ("scheduled_at", 1)],
            [("schedule_type", 1), ("status", 1)],
            [("organization_id", 1), ("created_at", -1)],
        ]
