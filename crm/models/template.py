from datetime import datetime

from beanie import Document
from pydantic import Field


class EmailTemplate(Document):
    organization_id: str
    name: str
    subject: str
    preheader: str = ""
    from_name: str = ""
    reply_to: str = ""
    html_body: str = ""
    plain_text_body: str = ""
    created_by: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "email_template"
        indexes = [[("organization_id", 1)]]
