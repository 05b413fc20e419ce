from marketplace.config import settings
from marketplace.database import async_session_maker
from marketplace.services.cart_service import cart_service
import logging

logger = logging.getLogger(__name__)


async def clear_expired_carts(days: int = settings.CART_EXPIRY_DAYS) -> int:
    """Purge carts idle for more than `days` days"""
    async with async_session_maker() as db:
        try:
            deleted = await cart_service.clear_expired_carts(db, days)
            logger.info(f"Expired cart cleanup removed {deleted} carts")
            return deleted
        except Exception as e:
            logger.error(f"Error clearing expired carts: {e}", exc_info=True)
            await db.rollback()
            return 0
