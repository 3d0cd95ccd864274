from datetime import datetime

from beanie import Document
from pydantic import Field


class Contact(Document):
    organization_id: str
    created_by: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    is_active: bool = True
    notes: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "contact"
        indexes = [
            [("organization_id", 1), ("created_at", -1)],
            [("organization_id", 1), ("email", 1)],
        ]
