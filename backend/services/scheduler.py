"""
Scheduled tasks for quote housekeeping
Expires pending quotes past their validity date once a day
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def expire_stale_quotes(quotes):
    """Expire every pending quote whose valid_until has passed"""
    logger.info("Starting scheduled quote expiry sweep...")
    try:
        expired = await quotes.expire_stale()
    except Exception as e:
        logger.error(f"Quote expiry sweep failed: {e}")
        return 0
    logger.info(f"Quote expiry sweep complete. Expired {expired} quotes.")
    return expired


def start_scheduler(quotes, hour: int = 2):
    """Start the APScheduler with the daily quote expiry job (UTC)"""
    scheduler.add_job(
        expire_stale_quotes,
        CronTrigger(hour=hour, minute=0, timezone="UTC"),
        args=[quotes],
        id="daily_quote_expiry",
        name=f"Daily Quote Expiry ({hour:02d}:00 UTC)",
        replace_existing=True
    )

    scheduler.start()
    logger.info(f"Scheduler started - Daily quote expiry scheduled for {hour:02d}:00 UTC")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")


def get_scheduler_status():
    """Get status of scheduled jobs"""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })
    return {
        "running": scheduler.running,
        "jobs": jobs
    }
