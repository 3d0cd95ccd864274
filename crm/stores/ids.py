from beanie import PydanticObjectId
from bson import ObjectId


def to_object_id(value: str | None) -> PydanticObjectId | None:
    """Parse a hex id; None for anything that cannot be an ObjectId."""
    if not value or not ObjectId.is_valid(value):
        return None
    return PydanticObjectId(value)


def to_object_ids(values: list[str]) -> list[PydanticObjectId]:
    return [oid for oid in (to_object_id(v) for v in values) if oid is not None]
