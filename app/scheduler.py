"""
APScheduler Background Jobs

Optional nightly accuracy refresh. Runs the same recompute as
POST /api/v1/learning/refresh-accuracy-stats inside the FastAPI process.
"""

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.middleware.correlation_id import job_correlation_id

logger = structlog.get_logger(__name__)


def run_scheduled_accuracy_refresh():
    """
    Wrapper function for the scheduled accuracy refresh.

    Failures are logged; the next run recomputes from scratch.
    """
    with job_correlation_id("accuracy_refresh"):
        try:
            from app.database import SessionLocal
            from app.services.accuracy_aggregator import recompute_accuracy_stats

            if SessionLocal is None:
                logger.warning("accuracy_refresh_skipped", reason="database_not_configured")
                return

            db = SessionLocal()
            try:
                result = recompute_accuracy_stats(db)
                logger.info("scheduled_accuracy_refresh_completed",
                            stats_updated=result["stats_updated"],
                            total_edits_processed=result["total_edits_processed"],
                            gap_detection=result["gap_detection"],
                            warnings=len(result["warnings"]))
            finally:
                db.close()

        except Exception as e:
            logger.error("scheduled_accuracy_refresh_crashed", error=str(e), exc_info=True)


def start_scheduler(scheduler: BackgroundScheduler, hour: int):
    """
    Register the daily accuracy refresh and start the scheduler.

    Args:
        scheduler: BackgroundScheduler instance from main.py
        hour: Hour of day (scheduler timezone) to run the refresh
    """
    scheduler.add_job(
        run_scheduled_accuracy_refresh,
        trigger=CronTrigger(hour=hour, minute=0),
        id="daily_accuracy_refresh",
        name="Daily accuracy stats refresh and gap detection",
        replace_existing=True
    )

    scheduler.start()
    logger.info("scheduler_started", jobs=["daily_accuracy_refresh"], hour=hour)
