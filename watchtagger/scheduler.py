"""Scheduler pour les réconciliations automatiques."""
from datetime import datetime
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from watchtagger.config import get_config
from watchtagger.core.runner import Runner

logger = logging.getLogger(__name__)

scheduler = None


def start_scheduler():
    """Démarre le scheduler si configuré."""
    global scheduler
    config = get_config()

    if not config.scheduler.enabled:
        logger.info("Scheduler is disabled")
        return

    scheduler = AsyncIOScheduler(timezone=config.scheduler.timezone)
    interval_hours = max(1, config.scheduler.interval_hours)
    job_options = {}
    if config.scheduler.run_on_startup:
        # next_run_time=None would pause the job, only pass it when set
        job_options["next_run_time"] = datetime.now(scheduler.timezone)

    # max_instances=1: APScheduler drops a trigger while the previous job still runs
    scheduler.add_job(
        run_scheduled_reconciliation,
        trigger=IntervalTrigger(hours=interval_hours, timezone=config.scheduler.timezone),
        id="reconciliation",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        **job_options,
    )

    scheduler.start()
    logger.info(f"Scheduler started: every {interval_hours}h, timezone: {config.scheduler.timezone}")


async def run_scheduled_reconciliation():
    """Exécute une réconciliation planifiée."""
    logger.info("Running scheduled reconciliation")
    try:
        run_id = await Runner().run(trigger="scheduler")
        if run_id is None:
            logger.warning("Scheduled reconciliation skipped: a run is already in progress")
        else:
            logger.info(f"Scheduled reconciliation completed, run_id: {run_id}")
    except Exception as e:
        logger.error(f"Error in scheduled reconciliation: {str(e)}")


def stop_scheduler():
    """Arrête le scheduler."""
    global scheduler
    if scheduler:
        scheduler.shutdown()
        scheduler = None
        logger.info("Scheduler stopped")
