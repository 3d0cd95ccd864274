"""Background job log: audit/progress rows for asynchronous work."""

from datetime import datetime

from beanie.operators import In, Set

from crm.core.pagination import skip_for
from crm.models.background_job_log import BackgroundJobLog, JobStatus, JobType
from crm.stores.ids import to_object_id


class JobLogStore:
    async def create(
        self,
        job_type: JobType,
        organization_id: str | None = None,
        reference_id: str | None = None,
    ) -> BackgroundJobLog:
        job = BackgroundJobLog(
            job_type=job_type,
            organization_id=organization_id,
            reference_id=reference_id,
            status="queued",
        )
        await job.insert()
        return job

    async def get_for_org(self, job_id: str, org_id: str) -> BackgroundJobLog | None:
        oid = to_object_id(job_id)
        if oid is None:
            return None
        return await BackgroundJobLog.find_one(
            BackgroundJobLog.id == oid,
            BackgroundJobLog.organization_id == org_id,
        )

    async def _set(self, job_id: str, fields: dict) -> None:
        fields[BackgroundJobLog.updated_at] = datetime.utcnow()
        await BackgroundJobLog.find_one(BackgroundJobLog.id == to_object_id(job_id)).update(Set(fields))

    async def set_status(self, job_id: str, status: JobStatus, error_message: str = "") -> None:
        fields: dict = {BackgroundJobLog.status: status}
        if error_message:
            fields[BackgroundJobLog.error_message] = error_message
        await self._set(job_id, fields)

    async def start(self, job_id: str) -> None:
        await self.set_status(job_id, "running")

    async def finish(self, job_id: str) -> None:
        await self.set_status(job_id, "success")

    async def fail(self, job_id: str, error_message: str) -> None:
        await self.set_status(job_id, "failed", error_message)

    async def set_total(self, job_id: str, total: int) -> None:
        await self._set(job_id, {BackgroundJobLog.total_records: total})

    async def set_processed(self, job_id: str, processed: int) -> None:
        await self._set(job_id, {BackgroundJobLog.processed_records: processed})

    async def list_by_org(
        self,
        org_id: str,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[BackgroundJobLog], int]:
        query = BackgroundJobLog.find(BackgroundJobLog.organization_id == org_id)
        total = await query.count()
        items = await query.sort("-created_at").skip(skip_for(page, limit)).limit(limit).to_list()
        return items, total

    async def fail_stale(self, job_type: JobType, before: datetime, error_message: str) -> int:
        """Mark queued/running jobs not touched since `before` as failed. Returns how many."""
        result = await BackgroundJobLog.find(
            BackgroundJobLog.job_type == job_type,
            In(BackgroundJobLog.status, ["queued", "running"]),
            BackgroundJobLog.updated_at <= before,
        ).update(
            Set({
                BackgroundJobLog.status: "failed",
                BackgroundJobLog.error_message: error_message,
                BackgroundJobLog.updated_at: datetime.utcnow(),
            })
        )
        return result.modified_count if result is not None else 0
