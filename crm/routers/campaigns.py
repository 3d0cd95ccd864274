from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from crm.core.pagination import clamp_page
from crm.deps import get_campaign_service, get_current_agent
from crm.models.campaign import Campaign
from crm.models.campaign_log import CampaignLog
from crm.models.user import User
from crm.services.campaigns import CampaignService

router = APIRouter()


class CampaignCreate(BaseModel):
    name: str = ""
    template_id: str = ""
    audience_ids: list[str] = []
    contact_id: str | None = None
    schedule_type: str = ""
    scheduled_at: datetime
    recurrence: str | None = None
    recurrence_day_of_week: int | None = None
    recurrence_day_of_month: int | None = None
    recurrence_time: str | None = None
    draft: bool = False


class CampaignUpdate(BaseModel):
    name: str | None = None
    scheduled_at: datetime | None = None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def campaign_out(c: Campaign) -> dict:
    return {
        "id": str(c.id),
        "organization_id": c.organization_id,
        "name": c.name,
        "template_id": c.template_id,
        "audience_ids": list(c.audience_ids),
        "contact_id": c.contact_id,
        "schedule_type": c.schedule_type,
        "scheduled_at": _iso(c.scheduled_at),
        "recurrence": c.recurrence,
        "recurrence_day_of_week": c.recurrence_day_of_week,
        "recurrence_day_of_month": c.recurrence_day_of_month,
        "recurrence_time": c.recurrence_time,
        "status": c.status,
        "last_run_at": _iso(c.last_run_at),
        "created_by": c.created_by,
        "created_at": _iso(c.created_at),
        "updated_at": _iso(c.updated_at),
    }


def log_out(entry: CampaignLog) -> dict:
    return {
        "id": str(entry.id),
        "contact_id": entry.contact_id,
        "recipient_email": entry.recipient_email,
        "subject": entry.subject,
        "status": entry.status,
        "error_message": entry.error_message,
        "sent_at": _iso(entry.sent_at),
        "created_at": _iso(entry.created_at),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def campaign_create(
    body: CampaignCreate,
    user: User = Depends(get_current_agent),
    service: CampaignService = Depends(get_campaign_service),
):
    """Create a one-time or recurring campaign targeting a contact or audiences."""
    c = await service.create_campaign(
        user.organization_id,
        str(user.id),
        name=body.name,
        template_id=body.template_id,
        schedule_type=body.schedule_type,
        scheduled_at=body.scheduled_at,
        audience_ids=body.audience_ids,
        contact_id=body.contact_id,
        recurrence=body.recurrence,
        recurrence_day_of_week=body.recurrence_day_of_week,
        recurrence_day_of_month=body.recurrence_day_of_month,
        recurrence_time=body.recurrence_time,
        draft=body.draft,
    )
    return {"message": "Campaign created successfully", "campaign": campaign_out(c)}


@router.get("")
async def campaigns_list(
    status_filter: str | None = Query(None, alias="status"),
    page: int = 1,
    limit: int = 20,
    user: User = Depends(get_current_agent),
    service: CampaignService = Depends(get_campaign_service),
):
    page, limit = clamp_page(page, limit)
    items, total = await service.list_campaigns(user.organization_id, status_filter, page, limit)
    return {
        "campaigns": [campaign_out(c) for c in items],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/{campaign_id}")
async def campaign_get(
    campaign_id: str,
    user: User = Depends(get_current_agent),
    service: CampaignService = Depends(get_campaign_service),
):
    c = await service.get_campaign(campaign_id, user.organization_id)
    return campaign_out(c)


@router.put("/{campaign_id}")
async def campaign_update(
    campaign_id: str,
    body: CampaignUpdate,
    user: User = Depends(get_current_agent),
    service: CampaignService = Depends(get_campaign_service),
):
    """Rename or reschedule; only draft and scheduled campaigns."""
    c = await service.update_campaign(
        campaign_id,
        user.organization_id,
        name=body.name,
        scheduled_at=body.scheduled_at,
    )
    return {"message": "Campaign updated successfully", "campaign": campaign_out(c)}


@router.delete("/{campaign_id}")
async def campaign_delete(
    campaign_id: str,
    user: User = Depends(get_current_agent),
    service: CampaignService = Depends(get_campaign_service),
):
    await service.delete_campaign(campaign_id, user.organization_id)
    return {"message": "Campaign deleted successfully"}


@router.post("/{campaign_id}/pause")
async def campaign_pause(
    campaign_id: str,
    user: User = Depends(get_current_agent),
    service: CampaignService = Depends(get_campaign_service),
):
    await service.pause_campaign(campaign_id, user.organization_id)
    return {"message": "Campaign paused successfully"}


@router.post("/{campaign_id}/resume")
async def campaign_resume(
    campaign_id: str,
    user: User = Depends(get_current_agent),
    service: CampaignService = Depends(get_campaign_service),
):
    await service.resume_campaign(campaign_id, user.organization_id)
    return {"message": "Campaign resumed successfully"}


@router.post("/{campaign_id}/run", status_code=status.HTTP_202_ACCEPTED)
async def campaign_run_now(
    campaign_id: str,
    user: User = Depends(get_current_agent),
    service: CampaignService = Depends(get_campaign_service),
):
    """Dispatch a run now; progress is reported on the returned background job."""
    job = await service.run_now(campaign_id, user.organization_id)
    return {"job_id": str(job.id), "status": job.status}


@router.get("/{campaign_id}/logs")
async def campaign_logs(
    campaign_id: str,
    page: int = 1,
    limit: int = 50,
    user: User = Depends(get_current_agent),
    service: CampaignService = Depends(get_campaign_service),
):
    page, limit = clamp_page(page, limit, default_limit=50)
    out = await service.get_logs(campaign_id, user.organization_id, page, limit)
    return {
        "logs": [log_out(e) for e in out["logs"]],
        "total": out["total"],
        "page": page,
        "limit": limit,
        "stats": out["stats"],
    }
