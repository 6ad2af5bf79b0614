"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from link_engine.config import settings
from link_engine.worker.tasks import task_runner

logger = logging.getLogger(__name__)


def setup_scheduler() -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Scheduling overview:
    - Stale catalog refresh every settings.refresh_interval_hours (when enabled)
    - Link health audit weekly at settings.health_audit_day_of_week / health_audit_hour

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()

    if settings.refresh_enabled:
        scheduler.add_job(
            task_runner.refresh_stale_catalogs,
            IntervalTrigger(hours=max(1, settings.refresh_interval_hours)),
            id="stale_catalog_refresh",
            name="Re-ingest stale brand link catalogs",
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
            misfire_grace_time=600,
            replace_existing=True,
        )

    scheduler.add_job(
        task_runner.audit_link_health,
        CronTrigger(day_of_week=settings.health_audit_day_of_week, hour=settings.health_audit_hour, minute=0),
        id="link_health_audit",
        name="Re-verify catalogued links",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: %s, health audit on %s at %d:00",
        f"stale refresh every {settings.refresh_interval_hours}h"
        if settings.refresh_enabled
        else "stale refresh disabled",
        settings.health_audit_day_of_week,
        settings.health_audit_hour,
    )
    return scheduler
