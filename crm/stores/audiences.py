"""Audience lookup and membership reads (audience_contact)."""

from crm.models.audience import Audience, AudienceContact
from crm.stores.ids import to_object_id


class AudienceStore:
    async def find_by_id(self, audience_id: str, org_id: str) -> Audience | None:
        oid = to_object_id(audience_id)
        if oid is None:
            return None
        return await Audience.find_one(Audience.id == oid, Audience.organization_id == org_id)

    async def contact_ids_for_audiences(self, audience_ids: list[str]) -> list[str]:
        """Distinct contact ids that belong to any of the audiences."""
        if not audience_ids:
            return []
        ids = await AudienceContact.distinct(
            "contact_id",
            {"audience_id": {"$in": list(audience_ids)}},
        )
        return [str(i) for i in ids]
