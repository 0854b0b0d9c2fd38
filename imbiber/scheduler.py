"""
APScheduler setup for scheduled release checks.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from imbiber.config import get_runtime_config
from imbiber.services import ServiceContext

logger = logging.getLogger(__name__)

JOB_ID = "release_check"

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


async def scheduled_check_job(services: ServiceContext):
    """Job function for scheduled checks."""
    from imbiber.runner import run_check

    logger.info("Starting scheduled release check...")
    try:
        result = await run_check(services)
        logger.info(
            f"Scheduled check completed: {result['authors']} authors checked, "
            f"{result['releases']} with new releases"
        )
    except Exception as e:
        logger.error(f"Scheduled check failed: {e}")


def _trigger() -> IntervalTrigger:
    config = get_runtime_config()
    return IntervalTrigger(hours=config.check_interval_hours, timezone=config.timezone)


def start_scheduler(services: ServiceContext):
    """Start the APScheduler with the configured interval."""
    global scheduler

    config = get_runtime_config()
    scheduler = AsyncIOScheduler(timezone=config.timezone)

    scheduler.add_job(
        scheduled_check_job,
        trigger=_trigger(),
        args=[services],
        id=JOB_ID,
        name="Release Check",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        f"Scheduler started. Release check every {config.check_interval_hours}h "
        f"({config.timezone})"
    )


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Scheduler shutdown")


def reschedule_check_job():
    """
    Reschedule the check job with current config.
    Called when schedule settings are updated.
    """
    if not scheduler:
        logger.warning("Cannot reschedule: scheduler not running")
        return

    scheduler.reschedule_job(JOB_ID, trigger=_trigger())

    config = get_runtime_config()
    logger.info(
        f"Schedule updated. Release check every {config.check_interval_hours}h "
        f"({config.timezone})"
    )


def get_next_run_time() -> str | None:
    """Get the next scheduled run time as ISO format string."""
    if scheduler:
        job = scheduler.get_job(JOB_ID)
        if job and job.next_run_time:
            return job.next_run_time.isoformat()
    return None
