"""Factline — Scheduler Jobs.

APScheduler hourly job that runs a window sync at the top of every hour.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from factline.config import settings
from factline.sync.service import DataSyncService
from factline.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()

JOB_ID = "hourly_sync"


async def hourly_sync_job(service: DataSyncService):
    """Run a window sync; failures are logged so the next tick still fires."""
    logger.info("Hourly sync triggered")
    try:
        result = await service.run_scheduled_sync()
        if result is not None:
            logger.info(
                f"Scheduled sync complete: {result.occurrences} occurrences, "
                f"{result.samples} samples"
            )
    except Exception as e:
        logger.error(f"Scheduled sync failed: {e}")


def start_scheduler(service: DataSyncService):
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        hourly_sync_job,
        "cron",
        minute=settings.sync_minute,
        args=[service],
        id=JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Window sync every hour at minute {settings.sync_minute}")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
