"""
Pytest configuration and fixtures
"""
import asyncio
import os
from typing import AsyncGenerator, Dict, List, Optional, Tuple

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set testing environment before the app reads its settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ["DEBUG"] = "0"

from marketplace.database import Base, get_db  # noqa: E402
from marketplace.core.exceptions import CollaboratorError  # noqa: E402
from marketplace.core.security import create_access_token  # noqa: E402
from marketplace.models import Vendor, Product, Order, OrderItem, OrderStatus  # noqa: E402
from marketplace.schemas.cart import CartLine, CartMessage, CartSnapshot, CartTotals  # noqa: E402

# Test database URL (SQLite in memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CONSUMER_ID = "consumer-1"
OTHER_CONSUMER_ID = "consumer-2"


@pytest.fixture
async def session_maker():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
async def app_client(session_maker) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the app, one database session per request"""
    from marketplace.main import app

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# Auth fixtures

def make_token(user_id: str, role: str) -> str:
    return create_access_token({"user_id": user_id, "role": role})


@pytest.fixture
def consumer_token() -> str:
    return make_token(CONSUMER_ID, "consumer")


@pytest.fixture
def auth_headers(consumer_token) -> Dict[str, str]:
    return {"Authorization": f"Bearer {consumer_token}"}


@pytest.fixture
def other_consumer_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(OTHER_CONSUMER_ID, 'consumer')}"}


@pytest.fixture
def vendor_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token('vendor-1', 'vendor')}"}


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token('admin-1', 'admin')}"}


# Catalog fixtures

@pytest.fixture
async def vendor(db_session: AsyncSession) -> Vendor:
    vendor = Vendor(name="Maple Goods")
    db_session.add(vendor)
    await db_session.commit()
    await db_session.refresh(vendor)
    return vendor


@pytest.fixture
async def product(db_session: AsyncSession, vendor: Vendor) -> Product:
    product = Product(vendor_id=vendor.id, name="Product X", price=10.00, quantity_in_stock=100)
    db_session.add(product)
    await db_session.commit()
    await db_session.refresh(product)
    return product


@pytest.fixture
async def second_product(db_session: AsyncSession, vendor: Vendor) -> Product:
    product = Product(vendor_id=vendor.id, name="Product Y", price=4.50, quantity_in_stock=5)
    db_session.add(product)
    await db_session.commit()
    await db_session.refresh(product)
    return product


async def make_order(
    db: AsyncSession,
    user_id: str,
    product: Product,
    status: OrderStatus = OrderStatus.DELIVERED,
    quantity: int = 1,
) -> Order:
    order = Order(user_id=user_id, status=status, total_amount=float(product.price) * quantity)
    order.items.append(
        OrderItem(product_id=product.id, quantity=quantity, price_at_purchase=product.price)
    )
    db.add(order)
    await db.commit()
    return order


@pytest.fixture
def order_factory(db_session: AsyncSession):
    """Insert an order the way the order service would"""
    async def _make(user_id: str, product: Product, status: OrderStatus = OrderStatus.DELIVERED) -> Order:
        return await make_order(db_session, user_id, product, status)
    return _make


# Cart collaborator fake

class FakeCartApi:
    """
    In-memory cart service. Records every call in order and can be told to
    fail, or to hold calls until released, for ordering tests. Reads answer
    from the cart as it was when they arrived, so a held read comes back stale.
    """

    def __init__(self, catalog: Optional[Dict[int, Tuple[str, float]]] = None, tax_rate: float = 0.15):
        self.catalog = catalog or {1: ("Product X", 10.0), 2: ("Product Y", 4.5)}
        self.tax_rate = tax_rate
        self.lines: Dict[int, CartLine] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.failures: Dict[str, Exception] = {}
        self.gate: Optional[asyncio.Event] = None
        self.read_gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_id = 1
        self.closed = False

    def fail_next(self, method: str, error: Optional[Exception] = None) -> None:
        self.failures[method] = error or CollaboratorError("cart service unavailable", upstream_status=503)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def mutations(self) -> List[Tuple[str, tuple]]:
        return [call for call in self.calls if call[0] not in ("get_cart", "get_totals")]

    async def _enter(self, method: str, *args) -> None:
        """Mutating calls count towards `max_in_flight` and wait on `gate`, reads wait on `read_gate`"""
        self.calls.append((method, args))
        mutating = method not in ("get_cart", "get_totals")
        if mutating:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if mutating and self.gate is not None:
                await self.gate.wait()
            if not mutating and self.read_gate is not None:
                await self.read_gate.wait()
            if method in self.failures:
                raise self.failures.pop(method)
        finally:
            if mutating:
                self.in_flight -= 1

    async def get_cart(self, page: int = 1, limit: Optional[int] = None) -> CartSnapshot:
        items = list(self.lines.values())
        await self._enter("get_cart", page, limit)
        return CartSnapshot(page=page, limit=limit or 50, total_lines=len(items), items=items)

    async def get_totals(self) -> CartTotals:
        lines = list(self.lines.values())
        await self._enter("get_totals")
        subtotal = sum(line.unit_price * line.quantity for line in lines)
        tax = round(subtotal * self.tax_rate, 2)
        return CartTotals(
            total_items=sum(line.quantity for line in lines),
            subtotal=round(subtotal, 2),
            estimated_tax=tax,
            total=round(subtotal + tax, 2),
            currency="CAD",
        )

    async def add_item(self, product_id: int, quantity: int = 1) -> CartLine:
        await self._enter("add_item", product_id, quantity)
        if product_id not in self.catalog:
            raise CollaboratorError("Product not found.", upstream_status=404)
        for item_id, line in self.lines.items():
            if line.product_id == product_id:
                self.lines[item_id] = line.model_copy(update={"quantity": line.quantity + quantity})
                return self.lines[item_id]
        name, price = self.catalog[product_id]
        line = CartLine(
            item_id=self._next_id,
            product_id=product_id,
            product_name=name,
            vendor_name="Maple Goods",
            unit_price=price,
            quantity=quantity,
        )
        self.lines[line.item_id] = line
        self._next_id += 1
        return line

    async def update_item(self, item_id: int, quantity: int) -> CartLine:
        await self._enter("update_item", item_id, quantity)
        if item_id not in self.lines:
            raise CollaboratorError(f"Item not found: {item_id}", upstream_status=404)
        self.lines[item_id] = self.lines[item_id].model_copy(update={"quantity": quantity})
        return self.lines[item_id]

    async def remove_item(self, item_id: int) -> CartMessage:
        await self._enter("remove_item", item_id)
        if self.lines.pop(item_id, None) is None:
            raise CollaboratorError("Item not found", upstream_status=404)
        return CartMessage(message="Product removed from cart.")

    async def clear_cart(self) -> CartMessage:
        await self._enter("clear_cart")
        self.lines.clear()
        return CartMessage(message="Cart cleared successfully.")

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_cart_api() -> FakeCartApi:
    return FakeCartApi()
