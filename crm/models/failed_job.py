"""Dead-letter: worker jobs that raised, kept for inspection."""

from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class FailedJob(Document):
    job_name: str
    arq_job_id: str
    reference_id: str | None = None  # campaign id for campaign runs
    args: list[Any] = Field(default_factory=list)
    reason: str = ""
    exception_type: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "failed_jobs"
        indexes = [[("job_name", 1), ("created_at", -1)], [("reference_id", 1)]]
