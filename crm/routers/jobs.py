from fastapi import APIRouter, Depends

from crm.core.exceptions import NotFoundError
from crm.core.pagination import clamp_page
from crm.deps import get_current_agent, get_job_store
from crm.models.background_job_log import BackgroundJobLog
from crm.models.user import User
from crm.stores.jobs import JobLogStore

router = APIRouter()


def job_out(job: BackgroundJobLog) -> dict:
    return {
        "id": str(job.id),
        "job_type": job.job_type,
        "reference_id": job.reference_id,
        "status": job.status,
        "total_records": job.total_records,
        "processed_records": job.processed_records,
        "error_message": job.error_message,
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "updated_at": job.updated_at.isoformat() if job.updated_at else None,
    }


@router.get("")
async def jobs_list(
    page: int = 1,
    limit: int = 20,
    user: User = Depends(get_current_agent),
    jobs: JobLogStore = Depends(get_job_store),
):
    page, limit = clamp_page(page, limit)
    items, total = await jobs.list_by_org(user.organization_id, page, limit)
    return {"jobs": [job_out(j) for j in items], "total": total, "page": page, "limit": limit}


@router.get("/{job_id}")
async def job_get(
    job_id: str,
    user: User = Depends(get_current_agent),
    jobs: JobLogStore = Depends(get_job_store),
):
    """Progress of a campaign run or import; scoped to the caller's organization."""
    job = await jobs.get_for_org(job_id, user.organization_id)
    if not job:
        raise NotFoundError("Job not found")
    return job_out(job)
