from datetime import datetime

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class Audience(Document):
    organization_id: str
    name: str
    description: str = ""
    created_by: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "audience"
        indexes = [[("organization_id", 1), ("created_at", -1)]]


class AudienceContact(Document):
    """Membership row; one per (audience, contact) pair."""

    audience_id: str
    contact_id: str
    added_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "audience_contact"
        indexes = [
            IndexModel([("audience_id", ASCENDING), ("contact_id", ASCENDING)], unique=True),
            [("contact_id", 1)],
        ]
