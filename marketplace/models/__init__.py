from marketplace.models.vendor import Vendor
from marketplace.models.product import Product
from marketplace.models.cart import Cart, CartItem
from marketplace.models.order import Order, OrderItem, OrderStatus
from marketplace.models.review import Review

__all__ = [
    "Vendor",
    "Product",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Review",
]
