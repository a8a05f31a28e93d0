"""APScheduler service for in-process polling jobs."""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.triggers.cron import CronTrigger
from typing import Any, Dict, Optional
import logging

from streamwatch.config import settings
from streamwatch.database import SessionLocal
from streamwatch.platforms.youtube.quota import BILLING_TIMEZONE
from streamwatch.services.error_tracking import capture_exception
from streamwatch.services.polling_runtime import PollingRuntime

logger = logging.getLogger(__name__)

POLL_JOB_ID = "youtube_poll"
QUOTA_RESET_JOB_ID = "youtube_quota_reset"

# Global scheduler instance
scheduler: Optional[BackgroundScheduler] = None


def get_scheduler() -> Optional[BackgroundScheduler]:
    """Get the global scheduler instance."""
    return scheduler


def youtube_poll_job(runtime: PollingRuntime):
    """
    Background job running one poll cycle.

    Args:
        runtime: Process-wide polling runtime
    """
    db = SessionLocal()
    try:
        result = runtime.run_cycle(db)
        logger.info(f"Scheduled poll: {result.to_dict()}")
    except Exception as e:
        logger.exception("Scheduled poll cycle failed")
        capture_exception(e, tags={"job": POLL_JOB_ID})
    finally:
        db.close()


def quota_reset_job(runtime: PollingRuntime):
    """Reset the quota counter at the start of the YouTube billing day."""
    runtime.quota_tracker.reset()


def start_scheduler(runtime: PollingRuntime, interval_seconds: Optional[int] = None):
    """
    Initialize and start the APScheduler.

    Args:
        runtime: Process-wide polling runtime shared with the HTTP trigger
        interval_seconds: Poll interval (defaults to POLL_INTERVAL_SECONDS)
    """
    global scheduler

    if scheduler is not None:
        logger.info("Scheduler already running")
        return

    # Jobs hold a live runtime object, so they stay in memory
    jobstores = {
        'default': MemoryJobStore()
    }

    executors = {
        'default': ThreadPoolExecutor(settings.SCHEDULER_EXECUTORS_DEFAULT_MAX_WORKERS)
    }

    # One poll at a time; missed runs collapse into one
    job_defaults = {
        'coalesce': True,
        'max_instances': 1
    }

    scheduler = BackgroundScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone='UTC'
    )

    scheduler.add_job(
        func=youtube_poll_job,
        trigger='interval',
        seconds=interval_seconds or settings.POLL_INTERVAL_SECONDS,
        args=[runtime],
        id=POLL_JOB_ID,
        replace_existing=True
    )

    scheduler.add_job(
        func=quota_reset_job,
        trigger=CronTrigger(hour=0, minute=0, timezone=BILLING_TIMEZONE),
        args=[runtime],
        id=QUOTA_RESET_JOB_ID,
        replace_existing=True
    )

    scheduler.start()
    logger.info("APScheduler started successfully")


def shutdown_scheduler():
    """Shutdown the APScheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("APScheduler shut down successfully")


def get_job_status() -> Dict[str, Any]:
    """
    Get status of the poll job.

    Returns:
        Job status dictionary
    """
    if scheduler is None:
        return {"exists": False, "running": False}

    job = scheduler.get_job(POLL_JOB_ID)
    if not job:
        return {"exists": False, "running": scheduler.running}

    return {
        "exists": True,
        "running": scheduler.running,
        "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None
    }
