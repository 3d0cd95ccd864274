from beanie.operators import In

from crm.models.contact import Contact
from crm.stores.ids import to_object_id, to_object_ids


class ContactStore:
    async def find_by_id(self, contact_id: str, org_id: str) -> Contact | None:
        oid = to_object_id(contact_id)
        if oid is None:
            return None
        return await Contact.find_one(Contact.id == oid, Contact.organization_id == org_id)

    async def find_by_ids(self, contact_ids: list[str], org_id: str) -> list[Contact]:
        """Contacts of the organization among the given ids; unknown or malformed ids are dropped."""
        oids = to_object_ids(contact_ids)
        if not oids:
            return []
        return await Contact.find(
            In(Contact.id, oids),
            Contact.organization_id == org_id,
        ).to_list()
