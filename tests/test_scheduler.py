"""Scheduler tick behaviour against in-memory stores."""

import asyncio
from datetime import datetime, timedelta

import pytest

from crm.services.dispatch import TaskDispatcher
from crm.services.scheduler import CampaignScheduler
from fakes import RecordingDispatcher, make_campaign, make_contact, make_template

pytestmark = pytest.mark.asyncio

MONDAY = datetime(2024, 1, 1, 9, 0)


def scheduler_for(stores, dispatcher, **kwargs) -> CampaignScheduler:
    return CampaignScheduler(campaigns=stores.campaigns, jobs=stores.jobs, dispatcher=dispatcher, **kwargs)


async def test_tick_dispatches_due_once_campaign(stores):
    dispatcher = RecordingDispatcher()
    due = stores.campaigns.add(make_campaign(scheduled_at=MONDAY - timedelta(minutes=5)))
    stores.campaigns.add(make_campaign(scheduled_at=MONDAY + timedelta(hours=1)))
    stores.campaigns.add(make_campaign(scheduled_at=MONDAY - timedelta(hours=1), status="paused"))

    dispatched = await scheduler_for(stores, dispatcher).tick(MONDAY)

    assert dispatched == [str(due.id)]
    [job] = stores.jobs.of_type("campaign_run")
    assert dispatcher.dispatched == [(str(job.id), str(due.id))]
    assert job.reference_id == str(due.id)
    assert job.organization_id == due.organization_id
    assert job.status == "queued"


async def test_tick_skips_campaign_without_organization(stores):
    dispatcher = RecordingDispatcher()
    stores.campaigns.add(make_campaign(organization_id="", scheduled_at=MONDAY - timedelta(days=1)))
    stores.campaigns.add(
        make_campaign(organization_id="", schedule_type="recurring", recurrence="daily", scheduled_at=MONDAY)
    )

    assert await scheduler_for(stores, dispatcher).tick(MONDAY + timedelta(days=2)) == []
    assert stores.jobs.rows == {}


async def test_never_run_recurring_dispatched_once_per_tick(stores):
    dispatcher = RecordingDispatcher()
    c = stores.campaigns.add(
        make_campaign(schedule_type="recurring", recurrence="daily", scheduled_at=MONDAY - timedelta(hours=1))
    )

    dispatched = await scheduler_for(stores, dispatcher).tick(MONDAY)

    assert dispatched == [str(c.id)]
    assert len(dispatcher.dispatched) == 1


async def test_running_recurring_campaign_skipped(stores):
    dispatcher = RecordingDispatcher()
    stores.campaigns.add(
        make_campaign(
            schedule_type="recurring",
            recurrence="daily",
            status="running",
            last_run_at=MONDAY - timedelta(days=2),
        )
    )
    assert await scheduler_for(stores, dispatcher).tick(MONDAY) == []


async def test_recurring_not_in_window_not_dispatched(stores):
    dispatcher = RecordingDispatcher()
    stores.campaigns.add(
        make_campaign(
            schedule_type="recurring",
            recurrence="daily",
            last_run_at=MONDAY - timedelta(hours=2),
        )
    )
    assert await scheduler_for(stores, dispatcher).tick(MONDAY) == []


async def test_dispatch_failure_fails_job_and_continues(stores):
    dispatcher = RecordingDispatcher(fail=True)
    stores.campaigns.add(make_campaign(scheduled_at=MONDAY - timedelta(minutes=1)))
    stores.campaigns.add(make_campaign(scheduled_at=MONDAY - timedelta(minutes=2)))

    assert await scheduler_for(stores, dispatcher).tick(MONDAY) == []

    jobs = stores.jobs.of_type("campaign_run")
    assert len(jobs) == 2
    assert all(j.status == "failed" for j in jobs)
    assert all(j.error_message == "Dispatch failed: redis unavailable" for j in jobs)


async def test_job_fail_write_error_does_not_end_tick(stores):
    dispatcher = RecordingDispatcher(fail=True)
    stores.campaigns.add(make_campaign(scheduled_at=MONDAY - timedelta(minutes=1)))
    stores.campaigns.add(make_campaign(scheduled_at=MONDAY - timedelta(minutes=2)))

    async def boom(job_id, error_message=""):
        raise RuntimeError("mongo down")

    stores.jobs.fail = boom

    assert await scheduler_for(stores, dispatcher).tick(MONDAY) == []
    assert len(stores.jobs.of_type("campaign_run")) == 2


async def test_due_query_failure_ends_tick_quietly(stores):
    dispatcher = RecordingDispatcher()

    async def boom(now):
        raise RuntimeError("mongo down")

    stores.campaigns.find_due_once_campaigns = boom
    assert await scheduler_for(stores, dispatcher).tick(MONDAY) == []


async def test_record_ticks_writes_scheduler_job(stores):
    dispatcher = RecordingDispatcher()
    stores.campaigns.add(make_campaign(scheduled_at=MONDAY - timedelta(minutes=1)))

    await scheduler_for(stores, dispatcher, record_ticks=True).tick(MONDAY)

    [tick_job] = stores.jobs.of_type("campaign_scheduler")
    assert tick_job.status == "success"
    assert tick_job.processed_records == 1
    assert tick_job.organization_id is None


async def test_once_campaign_runs_exactly_once_across_ticks(stores, executor, sender):
    contact = stores.contacts.add(make_contact(first_name="Alice", email="a@x.com"))
    template = stores.templates.add(make_template(subject="Hi {{first_name}}", html_body="<p>{{first_name}}</p>"))
    c = stores.campaigns.add(
        make_campaign(
            scheduled_at=datetime(2024, 1, 1, 0, 0),
            contact_id=str(contact.id),
            template_id=str(template.id),
        )
    )
    dispatcher = TaskDispatcher(executor)
    scheduler = scheduler_for(stores, dispatcher)

    assert await scheduler.tick(datetime(2024, 1, 1, 0, 1)) == [str(c.id)]
    await dispatcher.drain()

    [entry] = stores.logs.for_campaign(str(c.id))
    assert entry.status == "sent"
    assert entry.subject == "Hi Alice"
    assert entry.recipient_email == "a@x.com"
    assert c.status == "completed"
    assert c.last_run_at == datetime(2024, 1, 1, 0, 1)
    assert sender.sent[0]["html"] == "<p>Alice</p>"

    assert await scheduler.tick(datetime(2024, 1, 1, 0, 2)) == []
    await dispatcher.drain()
    assert len(stores.logs.for_campaign(str(c.id))) == 1
    assert len(sender.sent) == 1


async def test_start_ticks_immediately_and_stops(stores):
    dispatcher = RecordingDispatcher()
    stores.campaigns.add(make_campaign(scheduled_at=datetime(2000, 1, 1)))
    scheduler = scheduler_for(stores, dispatcher)

    scheduler.start(3600)
    for _ in range(20):
        if dispatcher.dispatched:
            break
        await asyncio.sleep(0.01)
    await asyncio.wait_for(scheduler.stop(), timeout=1)

    assert len(dispatcher.dispatched) == 1
