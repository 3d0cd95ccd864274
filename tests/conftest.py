import os
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Use test DB; the app never starts the scheduler under test
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "crm_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from crm.services.executor import CampaignExecutor  # noqa: E402
from crm.services.notifications import NotificationService  # noqa: E402
from fakes import (  # noqa: E402
    FakeAudienceStore,
    FakeCampaignLogStore,
    FakeCampaignStore,
    FakeContactStore,
    FakeJobStore,
    FakeNotificationStore,
    FakeTemplateStore,
    RecordingSender,
)

RUN_AT = datetime(2024, 1, 1, 0, 1)


@dataclass
class Stores:
    audiences: FakeAudienceStore
    campaigns: FakeCampaignStore
    templates: FakeTemplateStore
    contacts: FakeContactStore
    logs: FakeCampaignLogStore
    jobs: FakeJobStore
    notifications: FakeNotificationStore


@pytest.fixture
def stores() -> Stores:
    audiences = FakeAudienceStore()
    return Stores(
        audiences=audiences,
        campaigns=FakeCampaignStore(audiences),
        templates=FakeTemplateStore(),
        contacts=FakeContactStore(),
        logs=FakeCampaignLogStore(),
        jobs=FakeJobStore(),
        notifications=FakeNotificationStore(),
    )


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def executor(stores: Stores, sender: RecordingSender) -> CampaignExecutor:
    return CampaignExecutor(
        campaigns=stores.campaigns,
        templates=stores.templates,
        contacts=stores.contacts,
        logs=stores.logs,
        jobs=stores.jobs,
        sender=sender,
        notifications=NotificationService(stores.notifications),
        clock=lambda: RUN_AT,
    )


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    from crm.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
