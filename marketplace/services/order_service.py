"""Read-only access to order history, used for purchase-gating reviews"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload
from marketplace.core.exceptions import CollaboratorError
from marketplace.models.order import Order, OrderStatus
from typing import Iterable, List
import logging

logger = logging.getLogger(__name__)


class OrderService:

    @staticmethod
    async def get_user_orders(db: AsyncSession, user_id: str) -> List[Order]:
        """All orders of a user with their line items, newest first"""
        try:
            result = await db.execute(
                select(Order)
                .where(Order.user_id == user_id)
                .options(selectinload(Order.items))
                .order_by(Order.created_at.desc())
            )
        except SQLAlchemyError as e:
            logger.error(f"[ORDERS] Failed to load orders for user {user_id}: {e}", exc_info=True)
            raise CollaboratorError("Failed to verify purchase history with order service") from e
        return list(result.scalars().all())

    @staticmethod
    def has_delivered_product(orders: Iterable[Order], product_id: int) -> bool:
        """True if any delivered order contains the product"""
        return any(
            order.status == OrderStatus.DELIVERED
            and any(item.product_id == product_id for item in order.items)
            for order in orders
        )

    @staticmethod
    async def has_purchased(db: AsyncSession, user_id: str, product_id: int) -> bool:
        # Scans every order of the user; order volume per user is small
        orders = await OrderService.get_user_orders(db, user_id)
        return OrderService.has_delivered_product(orders, product_id)


order_service = OrderService()
