"""Scheduler for automated jobs (stale task sweep, notification retention)."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.core.config import constants, settings
from src.core.scheduler_tracker import retry_job_with_backoff
from src.services import notification_service, sweep_service


logger = logging.getLogger(__name__)

STALE_SWEEP_JOB = "stale_task_sweep"
NOTIFICATION_PURGE_JOB = "notification_purge"
JOB_NAMES = [STALE_SWEEP_JOB, NOTIFICATION_PURGE_JOB]

# Global scheduler instance; every trigger fires in the configured timezone
scheduler = AsyncIOScheduler(timezone=settings.timezone)


async def auto_cancel_stale_tasks() -> None:
    """Run the stale sweep; partial failures make the job retry the remaining tasks."""
    summary = await sweep_service.run_stale_sweep()
    if summary.failed:
        msg = f"{summary.failed} stale task(s) could not be cancelled: {summary.failed_task_ids}"
        raise RuntimeError(msg)


async def purge_read_notifications() -> None:
    await notification_service.purge_read_notifications()


def start_scheduler() -> None:
    """Start the scheduler and register all jobs.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler", extra={"timezone": settings.timezone})

    scheduler.add_job(
        retry_job_with_backoff,
        args=[auto_cancel_stale_tasks, STALE_SWEEP_JOB],
        trigger=CronTrigger(
            hour=settings.stale_sweep_hour,
            minute=settings.stale_sweep_minute,
            timezone=settings.timezone,
        ),
        id=STALE_SWEEP_JOB,
        name="Auto-cancel Stale Pending Tasks",
        replace_existing=True,
    )
    logger.info(
        "Scheduled stale sweep job: daily at %02d:%02d",
        settings.stale_sweep_hour,
        settings.stale_sweep_minute,
    )

    scheduler.add_job(
        retry_job_with_backoff,
        args=[purge_read_notifications, NOTIFICATION_PURGE_JOB],
        trigger=CronTrigger(hour=constants.NOTIFICATION_PURGE_HOUR, minute=0, timezone=settings.timezone),
        id=NOTIFICATION_PURGE_JOB,
        name="Purge Old Read Notifications",
        replace_existing=True,
    )
    logger.info("Scheduled notification purge job: daily at %02d:00", constants.NOTIFICATION_PURGE_HOUR)

    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
