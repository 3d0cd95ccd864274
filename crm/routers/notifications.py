from fastapi import APIRouter, Depends

from crm.core.exceptions import NotFoundError
from crm.core.pagination import clamp_page
from crm.deps import get_current_agent, get_notification_store
from crm.models.notification import Notification
from crm.models.user import User
from crm.stores.notifications import NotificationStore

router = APIRouter()


def notification_out(n: Notification) -> dict:
    return {
        "id": str(n.id),
        "notification_type": n.notification_type,
        "title": n.title,
        "message": n.message,
        "related_campaign_id": n.related_campaign_id,
        "is_read": n.is_read,
        "read_at": n.read_at.isoformat() if n.read_at else None,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


@router.get("")
async def notifications_list(
    page: int = 1,
    limit: int = 20,
    user: User = Depends(get_current_agent),
    store: NotificationStore = Depends(get_notification_store),
):
    page, limit = clamp_page(page, limit)
    items, total = await store.list_for_user(user.organization_id, str(user.id), page, limit)
    return {
        "notifications": [notification_out(n) for n in items],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/unread-count")
async def notifications_unread_count(
    user: User = Depends(get_current_agent),
    store: NotificationStore = Depends(get_notification_store),
):
    count = await store.unread_count(user.organization_id, str(user.id))
    return {"count": count}


@router.put("/{notification_id}/read")
async def notification_mark_read(
    notification_id: str,
    user: User = Depends(get_current_agent),
    store: NotificationStore = Depends(get_notification_store),
):
    if not await store.mark_read(notification_id, user.organization_id, str(user.id)):
        raise NotFoundError("Notification not found")
    return {"message": "Notification marked as read"}
