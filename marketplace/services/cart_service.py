"""Cart service for shopping cart operations"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import joinedload
from marketplace.config import settings
from marketplace.core.datetime_utils import utc_now
from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.models.cart import Cart, CartItem
from marketplace.models.product import Product
from marketplace.schemas.cart import CartLine, CartSnapshot, CartTotals
from datetime import timedelta
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


class CartService:
    """Service for managing shopping cart operations"""

    @staticmethod
    async def get_cart(db: AsyncSession, user_id: str) -> Optional[Cart]:
        result = await db.execute(
            select(Cart).where(Cart.user_id == user_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create_cart(db: AsyncSession, user_id: str) -> Cart:
        """Get existing cart or create new one for user"""
        cart = await CartService.get_cart(db, user_id)

        if not cart:
            cart = Cart(user_id=user_id)
            db.add(cart)
            await db.commit()
            await db.refresh(cart)
            logger.info(f"[CART] Created new cart for user {user_id}")

        return cart

    @staticmethod
    async def _get_items(db: AsyncSession, user_id: str) -> List[CartItem]:
        result = await db.execute(
            select(CartItem)
            .join(Cart, CartItem.cart_id == Cart.id)
            .where(Cart.user_id == user_id)
            .order_by(CartItem.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _get_owned_item(db: AsyncSession, user_id: str, item_id: int) -> CartItem:
        """Load a cart line, hiding lines that belong to other users"""
        result = await db.execute(
            select(CartItem)
            .join(Cart, CartItem.cart_id == Cart.id)
            .where(CartItem.id == item_id, Cart.user_id == user_id)
            .options(joinedload(CartItem.cart))
        )
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError(f"Item not found: {item_id}")
        return item

    @staticmethod
    async def get_cart_page(
        db: AsyncSession,
        user_id: str,
        page: int = 1,
        limit: Optional[int] = None
    ) -> CartSnapshot:
        """Get one page of cart lines, oldest first"""
        if page < 1:
            page = 1
        if not limit or limit < 1:
            limit = settings.CART_PAGE_LIMIT

        total_lines = await db.scalar(
            select(func.count(CartItem.id))
            .join(Cart, CartItem.cart_id == Cart.id)
            .where(Cart.user_id == user_id)
        )

        result = await db.execute(
            select(CartItem)
            .join(Cart, CartItem.cart_id == Cart.id)
            .where(Cart.user_id == user_id)
            .order_by(CartItem.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = result.scalars().all()

        logger.info(f"[CART] Loaded page {page} for user {user_id}: {len(items)}/{total_lines or 0} lines")
        return CartSnapshot(
            page=page,
            limit=limit,
            total_lines=total_lines or 0,
            items=[CartLine.from_item(item) for item in items],
        )

    @staticmethod
    async def get_totals(db: AsyncSession, user_id: str) -> CartTotals:
        """Calculate item count, subtotal, tax and total for the user's cart"""
        items = await CartService._get_items(db, user_id)

        subtotal = sum(float(item.unit_price) * item.quantity for item in items)
        total_items = sum(item.quantity for item in items)
        estimated_tax = round(subtotal * settings.TAX_RATE, 2)

        return CartTotals(
            total_items=total_items,
            subtotal=round(subtotal, 2),
            estimated_tax=estimated_tax,
            total=round(subtotal + estimated_tax, 2),
            currency=settings.CURRENCY,
        )

    @staticmethod
    async def add_item(
        db: AsyncSession,
        user_id: str,
        product_id: int,
        quantity: int = 1
    ) -> CartItem:
        """
        Add item to cart or update quantity if already exists.
        Product name, vendor name and price are captured on the first add.
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1.")

        product_result = await db.execute(
            select(Product)
            .where(Product.id == product_id)
            .options(joinedload(Product.vendor))
        )
        product = product_result.scalar_one_or_none()

        if not product or not product.is_active:
            raise NotFoundError("Product not found.")

        cart = await CartService.get_or_create_cart(db, user_id)

        existing_item_result = await db.execute(
            select(CartItem).where(
                CartItem.cart_id == cart.id,
                CartItem.product_id == product_id
            )
        )
        existing_item = existing_item_result.scalar_one_or_none()
        cart.updated_at = utc_now()

        if existing_item:
            existing_item.quantity += quantity
            await db.commit()
            await db.refresh(existing_item)
            logger.info(f"[CART] Updated cart item quantity: cart={cart.id}, product={product_id}, new_qty={existing_item.quantity}")
            return existing_item

        cart_item = CartItem(
            cart_id=cart.id,
            product_id=product_id,
            quantity=quantity,
            product_name=product.name,
            vendor_name=product.vendor.name if product.vendor else None,
            unit_price=product.price,
        )
        db.add(cart_item)
        await db.commit()
        await db.refresh(cart_item)
        logger.info(f"[CART] Added item to cart: cart={cart.id}, product={product_id}, qty={quantity}")
        return cart_item

    @staticmethod
    async def update_item_quantity(
        db: AsyncSession,
        user_id: str,
        item_id: int,
        quantity: int
    ) -> CartItem:
        """Set cart item quantity"""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1.")

        item = await CartService._get_owned_item(db, user_id, item_id)
        item.quantity = quantity
        item.cart.updated_at = utc_now()
        await db.commit()
        await db.refresh(item)
        logger.info(f"[CART] Updated cart item quantity: item={item_id}, qty={quantity}")

        return item

    @staticmethod
    async def remove_item(db: AsyncSession, user_id: str, item_id: int) -> None:
        """Remove item from cart"""
        item = await CartService._get_owned_item(db, user_id, item_id)
        item.cart.updated_at = utc_now()
        await db.delete(item)
        await db.commit()
        logger.info(f"[CART] Removed cart item: item={item_id}")

    @staticmethod
    async def clear_cart(db: AsyncSession, user_id: str) -> int:
        """Clear all items from cart. Returns the number of lines removed."""
        cart = await CartService.get_cart(db, user_id)
        if not cart:
            return 0

        items = await CartService._get_items(db, user_id)
        for item in items:
            await db.delete(item)
        cart.updated_at = utc_now()

        await db.commit()
        logger.info(f"[CART] Cleared cart: cart={cart.id}, items_removed={len(items)}")

        return len(items)

    @staticmethod
    async def clear_expired_carts(db: AsyncSession, days: int) -> int:
        """Delete carts untouched for more than `days` days"""
        if days < 1:
            raise ValidationError("days must be at least 1")

        cutoff = utc_now() - timedelta(days=days)
        result = await db.execute(
            select(Cart).where(Cart.updated_at < cutoff)
        )
        carts = result.scalars().all()

        for cart in carts:
            # Lines go with the cart (delete-orphan cascade)
            await db.delete(cart)

        await db.commit()
        logger.info(f"[CART] Cleared {len(carts)} carts idle for more than {days} days")
        return len(carts)


cart_service = CartService()
