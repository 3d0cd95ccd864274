"""User notifications raised by background work."""

from crm.core.logging import get_logger
from crm.stores.notifications import NotificationStore

log = get_logger(__name__)


class NotificationService:
    def __init__(self, store: NotificationStore) -> None:
        self.store = store

    async def notify_campaign_sent(
        self,
        org_id: str,
        user_id: str,
        campaign_id: str,
        recipient_count: int,
    ) -> None:
        """Best effort: a failure here never reaches the campaign run."""
        try:
            await self.store.create(
                organization_id=org_id,
                user_id=user_id,
                notification_type="campaign_sent",
                title="Campaign Sent Successfully",
                message=f"Your campaign has been sent to {recipient_count} recipients",
                related_campaign_id=campaign_id,
            )
        except Exception as e:
            log.warning("notification_failed", kind="campaign_sent", campaign_id=campaign_id, error=str(e))
