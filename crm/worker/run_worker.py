"""Run ARQ worker. Usage: python -m crm.worker.run_worker"""

from arq import run_worker
from arq.cron import cron

from crm.core.config import get_settings
from crm.services.dispatch import redis_settings_from_url
from crm.worker.tasks import campaign_scheduler_tick, run_campaign, shutdown, startup


def _even_step(n: int) -> int:
    """Largest divisor of 60 not above n, so a cron step never leaves a short gap at the wrap."""
    return max(d for d in (1, 2, 3, 4, 5, 6, 10, 12, 15, 20, 30, 60) if d <= max(1, n))


def cron_schedule(interval_seconds: int) -> dict[str, set[int]]:
    """
    Translate a tick interval into arq cron fields. Sub-minute intervals step
    seconds, longer ones step whole minutes; either step rounds down to a
    divisor of 60 (45s ticks every 30s, 7min every 6min, anything past an hour hourly).
    """
    if interval_seconds < 60:
        return {"second": set(range(0, 60, _even_step(interval_seconds)))}
    return {"minute": set(range(0, 60, _even_step(interval_seconds // 60))), "second": {0}}


_settings = get_settings()


class WorkerSettings:
    redis_settings = redis_settings_from_url(_settings.redis_url)
    functions = [run_campaign]
    cron_jobs = (
        [
            cron(
                campaign_scheduler_tick,
                run_at_startup=True,
                unique=True,
                **cron_schedule(_settings.scheduler_interval_seconds),
            )
        ]
        if _settings.scheduler_enabled
        else []
    )
    on_startup = startup
    on_shutdown = shutdown
    job_timeout = _settings.worker_job_timeout_seconds


if __name__ == "__main__":
    run_worker(WorkerSettings)
