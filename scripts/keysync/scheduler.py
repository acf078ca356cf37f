"""APScheduler-based interval scheduling for key sync runs."""

from __future__ import annotations

import logging

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.blocking import BlockingScheduler

from scripts.keysync.config import KeySyncConfig

logger = logging.getLogger("keysync.scheduler")


def _sync_job(config: KeySyncConfig) -> None:
    """Run one sync; fatal run errors are logged and the next tick retries."""
    from scripts.keysync.cli import execute_run

    execute_run(config)


def _on_job_error(event) -> None:
    logger.error(
        "Job %s raised an exception: %s",
        event.job_id,
        event.exception,
    )


def build_scheduler(config: KeySyncConfig) -> BlockingScheduler:
    scheduler = BlockingScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    # Runs share artifact paths; one at a time.
    scheduler.add_job(
        _sync_job,
        "interval",
        minutes=config.scheduler.interval_min,
        args=[config],
        id="keysync",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=config.scheduler.misfire_grace_time,
    )
    return scheduler


def start_scheduler(config: KeySyncConfig) -> None:
    """Run one sync immediately, then every ``interval_min`` minutes."""
    scheduler = build_scheduler(config)
    _sync_job(config)
    logger.info(
        "Starting scheduler with jobs: %s (every %d min)",
        [j.id for j in scheduler.get_jobs()], config.scheduler.interval_min,
    )
    scheduler.start()
