"""Campaign persistence: tenant-scoped CRUD plus the queries the scheduler runs."""

from datetime import datetime

from beanie.operators import In, NotIn, Set

from crm.core.pagination import skip_for
from crm.models.campaign import Campaign, CampaignStatus
from crm.stores.audiences import AudienceStore
from crm.stores.ids import to_object_id

# organization_id values that mark a malformed row; such campaigns are never scheduled
_MISSING_ORG = [None, ""]

EDITABLE_STATUSES = ("draft", "scheduled")


class CampaignStore:
    def __init__(self, audiences: AudienceStore) -> None:
        self.audiences = audiences

    async def create(self, **fields) -> Campaign:
        campaign = Campaign(**fields)
        await campaign.insert()
        return campaign

    async def find_by_id(self, campaign_id: str, org_id: str) -> Campaign | None:
        oid = to_object_id(campaign_id)
        if oid is None:
            return None
        return await Campaign.find_one(Campaign.id == oid, Campaign.organization_id == org_id)

    async def find_by_id_unscoped(self, campaign_id: str) -> Campaign | None:
        """Scheduler context: no tenant filter."""
        oid = to_object_id(campaign_id)
        if oid is None:
            return None
        return await Campaign.get(oid)

    async def find_all_by_org(
        self,
        org_id: str,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Campaign], int]:
        query = Campaign.find(Campaign.organization_id == org_id)
        if status:
            query = query.find(Campaign.status == status)
        total = await query.count()
        items = await query.sort("-created_at").skip(skip_for(page, limit)).limit(limit).to_list()
        return items, total

    async def update(
        self,
        campaign_id: str,
        org_id: str,
        name: str | None = None,
        scheduled_at: datetime | None = None,
    ) -> bool:
        """
        Write the editable fields while the campaign is still draft or scheduled.
        Only the named fields are touched, so a concurrent claim or run stamp is kept.
        False when no row matched (missing, other tenant, or no longer editable).
        """
        oid = to_object_id(campaign_id)
        if oid is None:
            return False
        fields: dict = {Campaign.updated_at: datetime.utcnow()}
        if name is not None:
            fields[Campaign.name] = name
        if scheduled_at is not None:
            fields[Campaign.scheduled_at] = scheduled_at
        result = await Campaign.find_one(
            Campaign.id == oid,
            Campaign.organization_id == org_id,
            In(Campaign.status, list(EDITABLE_STATUSES)),
        ).update(Set(fields))
        return result is not None and result.matched_count == 1

    async def update_status(self, campaign_id: str, status: CampaignStatus) -> None:
        await Campaign.find_one(Campaign.id == to_object_id(campaign_id)).update(
            Set({Campaign.status: status, Campaign.updated_at: datetime.utcnow()})
        )

    async def update_last_run_at(self, campaign_id: str, ran_at: datetime) -> None:
        await Campaign.find_one(Campaign.id == to_object_id(campaign_id)).update(
            Set({Campaign.last_run_at: ran_at, Campaign.updated_at: datetime.utcnow()})
        )

    async def delete(self, campaign_id: str, org_id: str) -> bool:
        """Remove a campaign unless a run holds it."""
        oid = to_object_id(campaign_id)
        if oid is None:
            return False
        result = await Campaign.find_one(
            Campaign.id == oid,
            Campaign.organization_id == org_id,
            Campaign.status != "running",
        ).delete()
        return result is not None and result.deleted_count == 1

    async def find_due_once_campaigns(self, now: datetime) -> list[Campaign]:
        """Scheduled, due, never run, with a tenant."""
        return await Campaign.find(
            Campaign.status == "scheduled",
            Campaign.scheduled_at <= now,
            Campaign.last_run_at == None,  # noqa: E711
            NotIn(Campaign.organization_id, _MISSING_ORG),
        ).to_list()

    async def find_active_recurring_campaigns(self) -> list[Campaign]:
        return await Campaign.find(
            Campaign.schedule_type == "recurring",
            In(Campaign.status, ["scheduled", "running"]),
            NotIn(Campaign.organization_id, _MISSING_ORG),
        ).to_list()

    async def transition(
        self,
        campaign_id: str,
        from_statuses: list[CampaignStatus],
        to_status: CampaignStatus,
    ) -> bool:
        """Compare-and-set on status in a single update; True only if this call changed it."""
        oid = to_object_id(campaign_id)
        if oid is None:
            return False
        result = await Campaign.find_one(
            Campaign.id == oid,
            In(Campaign.status, list(from_statuses)),
        ).update(Set({Campaign.status: to_status, Campaign.updated_at: datetime.utcnow()}))
        return result is not None and result.modified_count == 1

    async def claim_for_run(self, campaign_id: str) -> bool:
        """
        Atomically move a campaign from scheduled to running.
        Exactly one of any number of concurrent callers gets True.
        """
        return await self.transition(campaign_id, ["scheduled"], "running")

    async def record_run(self, campaign_id: str, ran_at: datetime, status: CampaignStatus) -> None:
        """
        Stamp last_run_at and move to the post-run status. For recurring
        campaigns the status is only rewritten while still running, so a
        pause issued during the run survives it.
        """
        oid = to_object_id(campaign_id)
        now = datetime.utcnow()
        if status == "scheduled":
            result = await Campaign.find_one(Campaign.id == oid, Campaign.status == "running").update(
                Set({Campaign.last_run_at: ran_at, Campaign.status: status, Campaign.updated_at: now})
            )
            if result is not None and result.modified_count == 1:
                return
            await self.update_last_run_at(campaign_id, ran_at)
            return
        await Campaign.find_one(Campaign.id == oid).update(
            Set({Campaign.last_run_at: ran_at, Campaign.status: status, Campaign.updated_at: now})
        )

    async def find_stale_running(self, before: datetime) -> list[Campaign]:
        return await Campaign.find(
            Campaign.status == "running",
            Campaign.updated_at <= before,
        ).to_list()

    async def get_recipient_contact_ids(self, campaign: Campaign) -> list[str]:
        if campaign.contact_id:
            return [campaign.contact_id]
        if campaign.audience_ids:
            return await self.audiences.contact_ids_for_audiences(campaign.audience_ids)
        return []
