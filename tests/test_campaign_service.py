"""Campaign management rules (create validation, lifecycle actions, run now)."""

from datetime import datetime, timedelta, timezone

import pytest

from crm.core.exceptions import BadRequestError, NotFoundError
from crm.services.campaigns import CampaignService
from fakes import (
    ORG,
    OTHER_ORG,
    USER_ID,
    RecordingDispatcher,
    make_audience,
    make_campaign,
    make_contact,
    make_template,
)

pytestmark = pytest.mark.asyncio

WHEN = datetime(2024, 6, 1, 10, 0)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def service(stores, dispatcher) -> CampaignService:
    return CampaignService(
        campaigns=stores.campaigns,
        templates=stores.templates,
        audiences=stores.audiences,
        contacts=stores.contacts,
        logs=stores.logs,
        jobs=stores.jobs,
        dispatcher=dispatcher,
    )


@pytest.fixture
def template(stores):
    return stores.templates.add(make_template())


@pytest.fixture
def contact(stores):
    return stores.contacts.add(make_contact(email="a@x.com"))


async def _create(service, template, **overrides):
    kwargs = {
        "name": "Launch",
        "template_id": str(template.id),
        "schedule_type": "once",
        "scheduled_at": WHEN,
    }
    kwargs.update(overrides)
    return await service.create_campaign(ORG, USER_ID, **kwargs)


async def test_create_once_for_contact(service, template, contact):
    c = await _create(service, template, contact_id=str(contact.id))
    assert c.status == "scheduled"
    assert c.contact_id == str(contact.id)
    assert c.audience_ids == []
    assert c.organization_id == ORG
    assert c.created_by == USER_ID
    assert c.recurrence is None


async def test_create_draft(service, template, contact):
    c = await _create(service, template, contact_id=str(contact.id), draft=True)
    assert c.status == "draft"


async def test_create_normalizes_aware_datetime_to_utc(service, template, contact):
    aware = datetime(2024, 6, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    c = await _create(service, template, contact_id=str(contact.id), scheduled_at=aware)
    assert c.scheduled_at == datetime(2024, 6, 1, 10, 0)


async def test_create_recurring_weekly(service, stores, template):
    audience = stores.audiences.add(make_audience(), [])
    c = await _create(
        service,
        template,
        audience_ids=[str(audience.id)],
        schedule_type="recurring",
        recurrence="weekly",
        recurrence_day_of_week=0,
        recurrence_time="09:30",
    )
    assert c.recurrence == "weekly"
    assert c.recurrence_day_of_week == 0
    assert c.recurrence_time == "09:30"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"name": ""}, "Name, template_id, and schedule_type are required"),
        ({"schedule_type": "hourly"}, "schedule_type must be 'once' or 'recurring'"),
        ({"contact_id": None}, "Must provide either audience_ids or contact_id, not both"),
        ({"schedule_type": "recurring"}, "recurrence is required for recurring campaigns"),
        ({"schedule_type": "recurring", "recurrence": "yearly"}, "recurrence must be 'daily', 'weekly', or 'monthly'"),
        ({"recurrence_day_of_week": 7}, "recurrence_day_of_week must be between 0 (Sunday) and 6 (Saturday)"),
        ({"recurrence_day_of_month": 0}, "recurrence_day_of_month must be between 1 and 31"),
        ({"recurrence_time": "24:00"}, "Invalid recurrence_time format. Use HH:MM"),
    ],
)
async def test_create_validation(service, template, contact, overrides, message):
    overrides.setdefault("contact_id", str(contact.id))
    with pytest.raises(BadRequestError) as exc:
        await _create(service, template, **overrides)
    assert exc.value.message == message


async def test_create_rejects_both_targets(service, stores, template, contact):
    audience = stores.audiences.add(make_audience(), [])
    with pytest.raises(BadRequestError):
        await _create(service, template, contact_id=str(contact.id), audience_ids=[str(audience.id)])


async def test_create_checks_references_in_org(service, stores, template, contact):
    foreign_template = stores.templates.add(make_template(organization_id=OTHER_ORG))
    with pytest.raises(NotFoundError):
        await _create(service, foreign_template, contact_id=str(contact.id))

    foreign_audience = stores.audiences.add(make_audience(organization_id=OTHER_ORG), [])
    with pytest.raises(NotFoundError) as exc:
        await _create(service, template, audience_ids=[str(foreign_audience.id)])
    assert exc.value.message == f"Audience not found: {foreign_audience.id}"

    with pytest.raises(NotFoundError):
        await _create(service, template, contact_id="65a0000000000000000000aa")
    assert stores.campaigns.rows == {}


async def test_get_is_tenant_scoped(service, stores):
    c = stores.campaigns.add(make_campaign(organization_id=OTHER_ORG))
    with pytest.raises(NotFoundError):
        await service.get_campaign(str(c.id), ORG)


async def test_update_only_draft_or_scheduled(service, stores):
    c = stores.campaigns.add(make_campaign(status="draft"))
    updated = await service.update_campaign(str(c.id), ORG, name="Renamed", scheduled_at=WHEN)
    assert updated.name == "Renamed"
    assert updated.scheduled_at == WHEN

    running = stores.campaigns.add(make_campaign(status="running"))
    with pytest.raises(BadRequestError):
        await service.update_campaign(str(running.id), ORG, name="x")


async def test_delete_refuses_running(service, stores):
    running = stores.campaigns.add(make_campaign(status="running"))
    with pytest.raises(BadRequestError):
        await service.delete_campaign(str(running.id), ORG)

    done = stores.campaigns.add(make_campaign(status="completed"))
    await service.delete_campaign(str(done.id), ORG)
    assert str(done.id) not in stores.campaigns.rows


def _claim_after_first_read(stores, campaign_id: str) -> None:
    """The executor claims the campaign right after the service has read it."""
    find_by_id = stores.campaigns.find_by_id
    reads = []

    async def read_then_claim(cid, org_id):
        campaign = await find_by_id(cid, org_id)
        snapshot = campaign.model_copy() if campaign is not None else None
        if not reads:
            await stores.campaigns.claim_for_run(campaign_id)
        reads.append(cid)
        return snapshot

    stores.campaigns.find_by_id = read_then_claim


async def test_update_does_not_undo_a_concurrent_claim(service, stores):
    c = stores.campaigns.add(make_campaign(status="scheduled", scheduled_at=WHEN))
    _claim_after_first_read(stores, str(c.id))

    with pytest.raises(BadRequestError):
        await service.update_campaign(str(c.id), ORG, name="Renamed")

    assert c.status == "running"
    assert c.name != "Renamed"
    assert await stores.campaigns.find_due_once_campaigns(WHEN) == []


async def test_delete_does_not_remove_a_concurrently_claimed_campaign(service, stores):
    c = stores.campaigns.add(make_campaign(status="scheduled"))
    _claim_after_first_read(stores, str(c.id))

    with pytest.raises(BadRequestError):
        await service.delete_campaign(str(c.id), ORG)

    assert stores.campaigns.rows[str(c.id)].status == "running"


async def test_update_and_delete_missing_campaign(service):
    with pytest.raises(NotFoundError):
        await service.update_campaign("65a000000000000000000099", ORG, name="x")
    with pytest.raises(NotFoundError):
        await service.delete_campaign("65a000000000000000000099", ORG)


async def test_pause_and_resume(service, stores):
    c = stores.campaigns.add(make_campaign(status="scheduled"))
    await service.pause_campaign(str(c.id), ORG)
    assert c.status == "paused"

    with pytest.raises(BadRequestError):
        await service.pause_campaign(str(c.id), ORG)

    await service.resume_campaign(str(c.id), ORG)
    assert c.status == "scheduled"

    with pytest.raises(BadRequestError):
        await service.resume_campaign(str(c.id), ORG)


async def test_run_now_dispatches(service, stores, dispatcher):
    c = stores.campaigns.add(make_campaign())
    job = await service.run_now(str(c.id), ORG)

    assert dispatcher.dispatched == [(str(job.id), str(c.id))]
    assert job.job_type == "campaign_run"
    assert job.reference_id == str(c.id)
    assert job.organization_id == ORG


async def test_run_now_rejects_executed_or_inactive(service, stores, dispatcher):
    ran = stores.campaigns.add(make_campaign(last_run_at=WHEN))
    with pytest.raises(BadRequestError) as exc:
        await service.run_now(str(ran.id), ORG)
    assert exc.value.message == "One-time campaign already executed"

    paused = stores.campaigns.add(make_campaign(status="paused"))
    with pytest.raises(BadRequestError):
        await service.run_now(str(paused.id), ORG)
    assert dispatcher.dispatched == []


async def test_get_logs_with_stats(service, stores):
    c = stores.campaigns.add(make_campaign())
    first = await stores.logs.create(str(c.id), "k1", "a@x.com", "Hi")
    await stores.logs.create(str(c.id), "k2", "b@x.com", "Hi")
    await stores.logs.update_status(str(first.id), "sent")

    out = await service.get_logs(str(c.id), ORG, 1, 50)

    assert out["total"] == 2
    assert out["stats"] == {"sent": 1, "queued": 1}
