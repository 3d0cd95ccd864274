from crm.models.template import EmailTemplate
from crm.stores.ids import to_object_id


class TemplateStore:
    async def find_by_id(self, template_id: str, org_id: str) -> EmailTemplate | None:
        oid = to_object_id(template_id)
        if oid is None:
            return None
        return await EmailTemplate.find_one(
            EmailTemplate.id == oid,
            EmailTemplate.organization_id == org_id,
        )
