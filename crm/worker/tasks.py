"""ARQ job definitions."""

import uuid
from typing import Any

from crm.core.config import get_settings
from crm.core.logging import configure_logging, get_logger
from crm.db.init import init_db
from crm.models.failed_job import FailedJob
from crm.runtime import Runtime, build_runtime
from crm.services.dispatch import ArqDispatcher

log = get_logger(__name__)


async def _run_with_dlq(
    job_name: str,
    arq_job_id: str | None,
    reference_id: str | None,
    args: list[Any],
    coro,
) -> None:
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    try:
        await coro
    except Exception as e:
        fid = arq_job_id or str(uuid.uuid4())
        log.exception("job_failed", job=job_name, arq_job_id=fid, reason=str(e))
        try:
            await FailedJob(
                job_name=job_name,
                arq_job_id=fid,
                reference_id=reference_id,
                args=args,
                reason=str(e)[:2000],
                exception_type=type(e).__name__,
            ).insert()
        except Exception as dlq_error:
            log.error("dead_letter_write_failed", job=job_name, arq_job_id=fid, error=str(dlq_error))
        raise


def _arq_job_id(ctx: dict[str, Any]) -> str | None:
    return ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None


def _runtime(ctx: dict[str, Any]) -> Runtime:
    return ctx["runtime"]


async def run_campaign(ctx: dict[str, Any], job_id: str, campaign_id: str) -> None:
    """Execute one campaign run enqueued by the API or the scheduler cron."""
    await _run_with_dlq(
        "run_campaign",
        _arq_job_id(ctx),
        campaign_id,
        [job_id, campaign_id],
        _runtime(ctx).executor.run(job_id, campaign_id),
    )


async def campaign_scheduler_tick(ctx: dict[str, Any]) -> None:
    """Cron job: dispatch due one-time and recurring campaigns onto the queue."""
    await _run_with_dlq(
        "campaign_scheduler_tick",
        _arq_job_id(ctx),
        None,
        [],
        _runtime(ctx).scheduler.tick(),
    )


async def startup(ctx: dict[str, Any]) -> None:
    settings = get_settings()
    configure_logging(debug=settings.debug, service="crm-worker")
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
    ctx["mongo"] = await init_db(settings)
    # Reuse the worker's own pool for scheduler dispatch
    runtime = build_runtime(settings, dispatcher=ArqDispatcher(redis=ctx["redis"]))
    ctx["runtime"] = runtime
    await runtime.reconcile()
    log.info("worker_started")


async def shutdown(ctx: dict[str, Any]) -> None:
    runtime = ctx.get("runtime")
    if runtime is not None:
        await runtime.close()
    mongo = ctx.get("mongo")
    if mongo is not None:
        mongo.close()
    log.info("worker_stopped")
