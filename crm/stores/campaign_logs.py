"""Delivery log: one row per recipient, created queued and finalized exactly once."""

from datetime import datetime

from beanie.operators import Set

from crm.core.pagination import skip_for
from crm.models.campaign_log import CampaignLog, DeliveryStatus
from crm.stores.ids import to_object_id

FINAL_STATUSES = ("sent", "failed")


class CampaignLogStore:
    async def create(
        self,
        campaign_id: str,
        contact_id: str,
        recipient_email: str,
        subject: str,
    ) -> CampaignLog:
        entry = CampaignLog(
            campaign_id=campaign_id,
            contact_id=contact_id,
            recipient_email=recipient_email,
            subject=subject,
            status="queued",
        )
        await entry.insert()
        return entry

    async def update_status(self, log_id: str, status: DeliveryStatus, error_message: str = "") -> bool:
        """
        Finalize a queued entry as sent or failed. Returns False when the entry
        is missing or already finalized; finalized entries are never reopened.
        """
        if status not in FINAL_STATUSES:
            raise ValueError(f"Invalid delivery status transition to {status!r}")
        fields: dict = {CampaignLog.status: status}
        if error_message:
            fields[CampaignLog.error_message] = error_message
        if status == "sent":
            fields[CampaignLog.sent_at] = datetime.utcnow()
        result = await CampaignLog.find_one(
            CampaignLog.id == to_object_id(log_id),
            CampaignLog.status == "queued",
        ).update(Set(fields))
        return result is not None and result.modified_count == 1

    async def find_by_campaign(
        self,
        campaign_id: str,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[CampaignLog], int]:
        query = CampaignLog.find(CampaignLog.campaign_id == campaign_id)
        total = await query.count()
        items = await query.sort("-created_at").skip(skip_for(page, limit)).limit(limit).to_list()
        return items, total

    async def stats_by_campaign(self, campaign_id: str) -> dict[str, int]:
        rows = await CampaignLog.find(CampaignLog.campaign_id == campaign_id).aggregate(
            [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        ).to_list()
        return {row["_id"]: row["count"] for row in rows}
