from datetime import datetime
from typing import Literal

from beanie import Document, Indexed
from pydantic import Field


class User(Document):
    """An agent inside an organization."""

    organization_id: Indexed(str)
    email: Indexed(str, unique=True)
    name: str = ""
    role: Literal["org_admin", "org_user"] = "org_user"
    is_active: bool = True
    session_version: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
