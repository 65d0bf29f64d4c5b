"""In-process periodic jobs using APScheduler.

Optional: the cron endpoint is the primary publish trigger. Enabled when
SCHEDULED_PUBLISH_INTERVAL_MINUTES > 0.
"""
from __future__ import annotations

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bonlog.db import engine as engine_mod
from bonlog.services.login_tracker import DatabaseAttemptStore
from bonlog.services.scheduled_posts import publish_scheduled_posts

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def scheduled_publish():
    """Run one publish batch in its own session."""
    try:
        async with engine_mod.async_session() as session:
            result = await publish_scheduled_posts(session)
        if "error" in result:
            logger.warning(f"Scheduled publish skipped: {result['error']}")
        elif result["published"] or result["failed"]:
            logger.info(f"Scheduled publish: {result['published']} published, {result['failed']} failed")
    except Exception:
        logger.exception("Scheduled publish failed")


async def purge_login_attempts():
    """Drop expired failed-login counters."""
    try:
        removed = await DatabaseAttemptStore().purge_expired()
        if removed:
            logger.info(f"Purged {removed} expired login attempt records")
    except Exception:
        logger.exception("Login attempt purge failed")


def start_scheduler(interval_minutes: int):
    """Start the background scheduler."""
    scheduler.add_job(
        scheduled_publish,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id="publish_scheduled_posts",
        name="Publish due scheduled posts",
        replace_existing=True,
    )
    scheduler.add_job(
        purge_login_attempts,
        trigger=IntervalTrigger(hours=1),
        id="purge_login_attempts",
        name="Purge expired login attempts",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started, publishing every {interval_minutes}m")


def stop_scheduler():
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
