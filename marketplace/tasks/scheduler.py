from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from marketplace.config import settings
from marketplace.tasks.cart_cleanup import clear_expired_carts
import logging

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def start_scheduler():
    """Start background task scheduler"""
    scheduler.add_job(
        clear_expired_carts,
        CronTrigger(hour=settings.CART_CLEANUP_HOUR, minute=0),
        id="clear_expired_carts",
        name="Clear expired carts",
        replace_existing=True
    )

    scheduler.start()
    logger.info("Background scheduler started")


def stop_scheduler():
    """Stop background task scheduler"""
    if scheduler.running:
        scheduler.shutdown()
    logger.info("Background scheduler stopped")
