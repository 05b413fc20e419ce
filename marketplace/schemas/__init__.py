from marketplace.schemas.cart import (
    CartItemCreate,
    CartItemUpdate,
    CartLine,
    CartSnapshot,
    CartTotals,
    CartMessage,
    ExpiredCartsCleared,
    ServiceHealth,
)
from marketplace.schemas.product import ProductRatingSummary
from marketplace.schemas.review import (
    ReviewCreate,
    ReviewUpdate,
    ReviewResponse,
    ReviewList,
    ReviewMutationResponse,
    ReviewStats,
)

__all__ = [
    "CartItemCreate",
    "CartItemUpdate",
    "CartLine",
    "CartSnapshot",
    "CartTotals",
    "CartMessage",
    "ExpiredCartsCleared",
    "ServiceHealth",
    "ProductRatingSummary",
    "ReviewCreate",
    "ReviewUpdate",
    "ReviewResponse",
    "ReviewList",
    "ReviewMutationResponse",
    "ReviewStats",
]
