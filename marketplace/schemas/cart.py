"""Cart schemas, shared by the cart service and the storefront cart engine"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List


class CartItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int = Field(ge=1)


class CartLine(BaseModel):
    """One product+quantity entry of a consumer's cart"""
    item_id: int
    product_id: int
    product_name: str
    vendor_name: Optional[str] = None
    unit_price: float
    quantity: int = Field(ge=1)
    added_at: Optional[datetime] = None

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)

    @classmethod
    def from_item(cls, item) -> "CartLine":
        return cls(
            item_id=item.id,
            product_id=item.product_id,
            product_name=item.product_name,
            vendor_name=item.vendor_name,
            unit_price=float(item.unit_price),
            quantity=item.quantity,
            added_at=item.added_at,
        )


class CartSnapshot(BaseModel):
    """A page of the cart as returned by GET /cart"""
    page: int = 1
    limit: int = 50
    total_lines: int = 0
    items: List[CartLine] = []

    @property
    def item_quantity(self) -> int:
        return sum(line.quantity for line in self.items)


class CartTotals(BaseModel):
    total_items: int = 0
    subtotal: float = 0.0
    estimated_tax: float = 0.0
    total: float = 0.0
    currency: str = "CAD"


class CartMessage(BaseModel):
    message: str


class ExpiredCartsCleared(BaseModel):
    message: str
    deleted_count: int


class ServiceHealth(BaseModel):
    service: str
    status: str
    uptime_seconds: float
    checked_at: datetime
