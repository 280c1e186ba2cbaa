# cardlistings/scheduler.py
import os
from apscheduler.schedulers.background import BackgroundScheduler
from .services import run_sweep
from .utils import logger

SWEEP_INTERVAL_HOURS = float(os.getenv("SWEEP_INTERVAL_HOURS", "24"))


def sweep_job():
    try:
        result = run_sweep()
        logger.info("Scheduled sweep finished: %s", result)
    except Exception:
        # keep the scheduler alive; the next interval retries
        logger.exception("Scheduled sweep failed")


scheduler = BackgroundScheduler(timezone="UTC")
scheduler.add_job(sweep_job, 'interval', hours=SWEEP_INTERVAL_HOURS, id="sweep_expired_listings",
                  max_instances=1, coalesce=True)


def start():
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started, sweeping every %s hours", SWEEP_INTERVAL_HOURS)


def shutdown():
    if scheduler.running:
        scheduler.shutdown(wait=False)
