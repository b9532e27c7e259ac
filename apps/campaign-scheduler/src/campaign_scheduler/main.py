"""
Campaign Scheduler

Polling loop for time-based jobs:
1. Every 5 minutes: send scheduled campaigns that are due
2. Every hour: delete old read notifications and, on the first day of the
   month, reset every tenant's credits
"""

import asyncio
import logging
import os
import signal
import time
from datetime import datetime

from sevencore.clock import utcnow
from sevencore.db import get_db
from sevencore.logging import setup_logging

from seven_commerce.services.credits import CreditService
from seven_commerce.services.notifications import NotificationService
from seven_whatsapp.campaigns import run_campaign_scheduler_job

setup_logging()
logger = logging.getLogger(__name__)

# Configuration
CAMPAIGN_INTERVAL_SEC = int(os.getenv("SCHEDULER_CAMPAIGN_INTERVAL", "300"))
MAINTENANCE_INTERVAL_SEC = int(os.getenv("SCHEDULER_MAINTENANCE_INTERVAL", "3600"))
NOTIFICATION_RETENTION_DAYS = int(os.getenv("SCHEDULER_NOTIFICATION_RETENTION_DAYS", "30"))

# Graceful shutdown
shutdown_requested = False


def signal_handler(signum, frame):
    global shutdown_requested
    logger.info(f"Received signal {signum}, requesting shutdown...")
    shutdown_requested = True


signal.signal(signal.SIGTERM, signal_handler)
signal.signal(signal.SIGINT, signal_handler)


def run_campaigns() -> None:
    db = next(get_db())
    try:
        results = asyncio.run(run_campaign_scheduler_job(db))
        for result in results:
            logger.info(f"Campaign {result['campaign_id']}: {result['status']}", extra={"result": result})
    except Exception as e:
        logger.error(f"Error in campaign job: {e}", exc_info=True)
        db.rollback()
    finally:
        db.close()


def run_maintenance(now: datetime, last_reset: tuple[int, int] | None) -> tuple[int, int] | None:
    """
    Hourly housekeeping.

    Returns:
        (year, month) of the last credit reset
    """
    db = next(get_db())
    try:
        deleted = NotificationService(db).cleanup(days_old=NOTIFICATION_RETENTION_DAYS)
        if deleted:
            logger.info(f"Deleted {deleted} old notifications")

        month = (now.year, now.month)
        if now.day == 1 and last_reset != month:
            count = CreditService(db).reset_monthly_credits()
            logger.info(f"Monthly credit reset done for {count} users")
            return month

    except Exception as e:
        logger.error(f"Error in maintenance job: {e}", exc_info=True)
        db.rollback()
    finally:
        db.close()

    return last_reset


def sleep_until(deadline: float) -> None:
    while not shutdown_requested and time.monotonic() < deadline:
        time.sleep(min(1.0, deadline - time.monotonic()))


def main():
    """Main scheduler loop."""
    logger.info(
        f"Starting campaign scheduler (campaigns every {CAMPAIGN_INTERVAL_SEC}s, "
        f"maintenance every {MAINTENANCE_INTERVAL_SEC}s)"
    )

    next_campaigns = time.monotonic()
    next_maintenance = time.monotonic()
    last_reset = None

    while not shutdown_requested:
        now = time.monotonic()

        if now >= next_campaigns:
            run_campaigns()
            next_campaigns = now + CAMPAIGN_INTERVAL_SEC

        if now >= next_maintenance:
            last_reset = run_maintenance(utcnow(), last_reset)
            next_maintenance = now + MAINTENANCE_INTERVAL_SEC

        sleep_until(min(next_campaigns, next_maintenance))

    logger.info("Campaign scheduler shutting down gracefully")


if __name__ == "__main__":
    main()
