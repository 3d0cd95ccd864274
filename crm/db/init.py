import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from crm.core.config import Settings, get_settings
from crm.models import (
    Audience,
    AudienceContact,
    BackgroundJobLog,
    Campaign,
    CampaignLog,
    Contact,
    EmailTemplate,
    FailedJob,
    Notification,
    User,
)

DOCUMENT_MODELS = [
    User,
    Contact,
    Audience,
    AudienceContact,
    EmailTemplate,
    Campaign,
    CampaignLog,
    BackgroundJobLog,
    Notification,
    FailedJob,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def make_client(settings: Settings, **extra) -> AsyncIOMotorClient:
    kwargs = dict(extra)
    # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    return AsyncIOMotorClient(settings.mongodb_uri, **kwargs)


async def init_db(settings: Settings | None = None) -> AsyncIOMotorClient:
    settings = settings or get_settings()
    client = make_client(settings)
    database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    return client
