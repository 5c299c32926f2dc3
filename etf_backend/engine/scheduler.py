"""APScheduler integration for FastAPI.

Two fixed interval jobs: the price sync cycle and the alert check.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from etf_backend.config import settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def _job_functions() -> dict:
    from etf_backend.engine.alert_job import run_alert_check_cycle
    from etf_backend.engine.price_sync import run_price_sync_cycle

    return {
        "price_sync": (run_price_sync_cycle, settings.price_sync_interval_minutes),
        "alert_check": (run_alert_check_cycle, settings.alert_check_interval_minutes),
    }


def add_jobs():
    """Add or replace the fixed interval jobs."""
    for job_id, (func, minutes) in _job_functions().items():
        scheduler.add_job(
            func,
            trigger=IntervalTrigger(minutes=minutes),
            id=job_id,
            name=job_id.replace("_", " ").title(),
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )
        logger.info(f"Scheduled {job_id} every {minutes}m")


async def run_job(job_id: str):
    """Run a job once, outside its schedule. Raises KeyError for unknown ids."""
    func, _ = _job_functions()[job_id]
    logger.info(f"Manual trigger: {job_id}")
    return await func()


def start_scheduler():
    """Register the jobs and start the scheduler."""
    add_jobs()
    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if j.next_run_time else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
