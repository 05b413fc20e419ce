"""Cart API endpoints consumed by the storefront cart engine"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from marketplace.database import get_db
from marketplace.api.deps import CurrentUser, get_current_consumer, get_current_admin
from marketplace.config import settings
from marketplace.core.datetime_utils import utc_now
from marketplace.core.exceptions import MarketplaceError
from marketplace.services.cart_service import cart_service
from marketplace.schemas.cart import (
    CartItemCreate,
    CartItemUpdate,
    CartLine,
    CartMessage,
    CartSnapshot,
    CartTotals,
    ExpiredCartsCleared,
    ServiceHealth,
)
import logging
import time

router = APIRouter()
logger = logging.getLogger(__name__)

_started_at = time.monotonic()


@router.get("/health", response_model=ServiceHealth)
async def health():
    return ServiceHealth(
        service="cart",
        status="ok",
        uptime_seconds=round(time.monotonic() - _started_at, 3),
        checked_at=utc_now(),
    )


@router.get("", response_model=CartSnapshot)
async def get_cart(
    page: int = 1,
    limit: int = settings.CART_PAGE_LIMIT,
    current_user: CurrentUser = Depends(get_current_consumer),
    db: AsyncSession = Depends(get_db)
):
    """Get one page of the consumer's cart lines"""
    return await cart_service.get_cart_page(db, current_user.user_id, page, limit)


@router.get("/totals", response_model=CartTotals)
async def get_cart_totals(
    current_user: CurrentUser = Depends(get_current_consumer),
    db: AsyncSession = Depends(get_db)
):
    """Item count, subtotal, estimated tax and total"""
    return await cart_service.get_totals(db, current_user.user_id)


@router.post("/items", response_model=CartLine, status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    item_data: CartItemCreate,
    current_user: CurrentUser = Depends(get_current_consumer),
    db: AsyncSession = Depends(get_db)
):
    """
    Add product to cart
    If product already in cart, quantity will be increased
    """
    try:
        cart_item = await cart_service.add_item(
            db,
            current_user.user_id,
            item_data.product_id,
            item_data.quantity
        )
        logger.info(f"[CART] User {current_user.user_id} added product {item_data.product_id} to cart")
        return CartLine.from_item(cart_item)
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"[CART] Error adding item to cart for user {current_user.user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Server error while adding item")


@router.put("/items/{item_id}", response_model=CartLine)
async def update_cart_item(
    item_id: int,
    item_data: CartItemUpdate,
    current_user: CurrentUser = Depends(get_current_consumer),
    db: AsyncSession = Depends(get_db)
):
    """Set cart item quantity"""
    try:
        cart_item = await cart_service.update_item_quantity(
            db,
            current_user.user_id,
            item_id,
            item_data.quantity
        )
        return CartLine.from_item(cart_item)
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"[CART] Error updating cart item {item_id} for user {current_user.user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Server error while updating cart")


@router.delete("/items/{item_id}", response_model=CartMessage)
async def remove_cart_item(
    item_id: int,
    current_user: CurrentUser = Depends(get_current_consumer),
    db: AsyncSession = Depends(get_db)
):
    """Remove item from cart"""
    try:
        await cart_service.remove_item(db, current_user.user_id, item_id)
        return CartMessage(message="Product removed from cart.")
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"[CART] Error removing cart item {item_id} for user {current_user.user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Server error while removing item")


@router.delete("/clear", response_model=CartMessage)
async def clear_cart(
    current_user: CurrentUser = Depends(get_current_consumer),
    db: AsyncSession = Depends(get_db)
):
    """Clear all items from cart"""
    try:
        await cart_service.clear_cart(db, current_user.user_id)
        return CartMessage(message="Cart cleared successfully.")
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"[CART] Error clearing cart for user {current_user.user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Server error while clearing cart")


@router.delete("/admin/clear-expired", response_model=ExpiredCartsCleared)
async def clear_expired_carts(
    days: int = Query(default=settings.CART_EXPIRY_DAYS, ge=1),
    current_user: CurrentUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete carts idle for more than `days` days (admin only)"""
    deleted = await cart_service.clear_expired_carts(db, days)
    logger.info(f"[CART] Admin {current_user.user_id} cleared {deleted} expired carts")
    return ExpiredCartsCleared(message="Expired carts cleared", deleted_count=deleted)
