from datetime import datetime

from beanie.operators import Set

from crm.core.pagination import skip_for
from crm.models.notification import Notification
from crm.stores.ids import to_object_id


class NotificationStore:
    async def create(self, **fields) -> Notification:
        notification = Notification(**fields)
        await notification.insert()
        return notification

    async def list_for_user(
        self,
        org_id: str,
        user_id: str,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Notification], int]:
        query = Notification.find(
            Notification.organization_id == org_id,
            Notification.user_id == user_id,
        )
        total = await query.count()
        items = await query.sort("-created_at").skip(skip_for(page, limit)).limit(limit).to_list()
        return items, total

    async def unread_count(self, org_id: str, user_id: str) -> int:
        return await Notification.find(
            Notification.organization_id == org_id,
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        ).count()

    async def mark_read(self, notification_id: str, org_id: str, user_id: str) -> bool:
        oid = to_object_id(notification_id)
        if oid is None:
            return False
        result = await Notification.find_one(
            Notification.id == oid,
            Notification.organization_id == org_id,
            Notification.user_id == user_id,
        ).update(Set({Notification.is_read: True, Notification.read_at: datetime.utcnow()}))
        return result is not None and result.matched_count == 1
