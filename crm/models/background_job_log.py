from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field

JobType = Literal["csv_import", "campaign_run", "campaign_scheduler"]
JobStatus = Literal["queued", "running", "success", "failed"]


class BackgroundJobLog(Document):
    job_type: JobType
    organization_id: str | None = None
    reference_id: str | None = None
    status: JobStatus = "queued"
    total_records: int | None = None
    processed_records: int | None = None
    error_message: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "background_job_log"
        indexes = [
            [("organization_id", 1), ("created_at", -1)],
            [("job_type", 1), ("status", 1)],
            [("reference_id", 1)],
        ]
