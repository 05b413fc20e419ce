"""
Storefront cart state manager.

Holds the consumer's cart as last fetched from the cart service plus any
provisional (optimistic) adjustments, and funnels every mutating call
through one FIFO queue so rapid UI actions reach the service in order.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

import httpx

from marketplace.client.api_client import ApiClient
from marketplace.client.cart_api import CartApi
from marketplace.client.debounce import Debouncer
from marketplace.client.operation_queue import OperationQueue
from marketplace.client.session import ConsumerSession
from marketplace.config import settings
from marketplace.core.datetime_utils import utc_now
from marketplace.core.exceptions import AuthorizationError, MarketplaceError, ValidationError
from marketplace.schemas.cart import CartLine, CartMessage, CartSnapshot, CartTotals

logger = logging.getLogger(__name__)

# item_id of an adjustment for a line the service has not created yet
NEW_ITEM = "new"


class CartState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"


@dataclass(eq=False)
class PendingAdjustment:
    """
    A not-yet-confirmed change to the cart's item count.

    `settled_seq` is set once the service accepted the change; the
    adjustment is dropped by the first refresh that started after that.
    """
    item_id: object
    delta_quantity: int
    applied_at: datetime = field(default_factory=utc_now)
    settled_seq: Optional[int] = None


class CartEngine:
    """
    One instance per signed-in session: build it at login, `aclose()` it at
    logout. The UI reads `snapshot`/`totals` and calls the operations; it
    never mutates cart state itself.

    Mutating operations (`add_item`, `update_quantity`, `remove_item`,
    `clear_cart`) validate synchronously, enqueue, and return an awaitable
    for their outcome. Failures are re-raised only after the local view has
    been resynchronized with the service.
    """

    def __init__(
        self,
        session: Optional[ConsumerSession],
        cart_api: CartApi,
        debounce_seconds: float = settings.CART_REFRESH_DEBOUNCE_SECONDS,
        page_limit: int = settings.CART_PAGE_LIMIT,
        owns_api: bool = False,
    ):
        self.session = session
        self._api = cart_api
        self._owns_api = owns_api
        self._page_limit = page_limit

        self._state = CartState.UNINITIALIZED
        self._snapshot: Optional[CartSnapshot] = None
        self._server_totals: Optional[CartTotals] = None
        self._pending: List[PendingAdjustment] = []
        self._settle_seq = 0
        # Every fetch takes a ticket; results older than the last applied
        # ticket, or than the last reset, are dropped
        self._fetch_seq = 0
        self._applied_fetch = 0

        self._queue = OperationQueue(name="cart")
        self._debouncer = Debouncer(debounce_seconds, self._resync, name="cart-refresh")

    @classmethod
    def for_session(
        cls,
        session: Optional[ConsumerSession],
        base_url: str = settings.CART_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ) -> "CartEngine":
        """Build an engine that owns its HTTP client"""
        client = ApiClient(base_url, token=session.token if session else None, transport=transport)
        return cls(session, CartApi(client), owns_api=True, **kwargs)

    async def __aenter__(self) -> "CartEngine":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # Read side

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state in (CartState.UNINITIALIZED, CartState.LOADING)

    @property
    def snapshot(self) -> Optional[CartSnapshot]:
        return self._snapshot

    @property
    def items(self) -> List[CartLine]:
        return list(self._snapshot.items) if self._snapshot else []

    @property
    def server_totals(self) -> Optional[CartTotals]:
        """Totals exactly as last fetched, without provisional adjustments"""
        return self._server_totals

    @property
    def totals(self) -> Optional[CartTotals]:
        """
        Totals for display. `total_items` includes pending adjustments;
        price fields only move on refresh.
        """
        if self._server_totals is None:
            return None
        delta = sum(a.delta_quantity for a in self._pending)
        if not delta:
            return self._server_totals
        return self._server_totals.model_copy(
            update={"total_items": max(0, self._server_totals.total_items + delta)}
        )

    @property
    def pending_adjustments(self) -> Tuple[PendingAdjustment, ...]:
        return tuple(self._pending)

    @property
    def is_consistent(self) -> bool:
        return not self._pending and not self._queue.pending and not self._debouncer.pending

    def line_for(self, item_id: int) -> Optional[CartLine]:
        for line in self.items:
            if line.item_id == item_id:
                return line
        return None

    # Refresh

    def _has_consumer(self) -> bool:
        return self.session is not None and self.session.is_consumer

    def _require_consumer(self) -> None:
        if not self._has_consumer():
            raise AuthorizationError("Only signed-in consumers have a cart")

    def _reset(self, state: CartState) -> None:
        self._debouncer.cancel()
        self._snapshot = None
        self._server_totals = None
        self._pending.clear()
        self._state = state
        self._applied_fetch = self._fetch_seq

    async def refresh(self) -> None:
        """
        Replace the local view with the service's cart and totals.
        Without a consumer session the view is cleared and nothing is fetched.
        """
        if not self._has_consumer():
            self._reset(CartState.EMPTY)
            return

        self._debouncer.cancel()
        first_load = self._snapshot is None and self._state != CartState.EMPTY
        if first_load:
            self._state = CartState.LOADING

        seen_seq = self._settle_seq
        self._fetch_seq += 1
        ticket = self._fetch_seq
        try:
            snapshot, totals = await asyncio.gather(
                self._api.get_cart(limit=self._page_limit),
                self._api.get_totals(),
            )
        except Exception as e:
            logger.error(f"[CART ENGINE] Failed to fetch cart for user {self.session.user_id}: {e}")
            if first_load and ticket > self._applied_fetch:
                self._state = CartState.UNINITIALIZED
            raise

        if ticket <= self._applied_fetch:
            logger.info(f"[CART ENGINE] Dropped stale cart fetch for user {self.session.user_id}")
            return

        self._applied_fetch = ticket
        self._snapshot = snapshot
        self._server_totals = totals
        # Adjustments the fetched state already reflects
        self._pending = [
            a for a in self._pending
            if a.settled_seq is None or a.settled_seq > seen_seq
        ]
        self._state = CartState.READY

    async def _resync(self) -> None:
        """Refresh for recovery paths, where the failed operation's error is what the caller sees"""
        try:
            await self.refresh()
        except MarketplaceError as e:
            logger.warning(f"[CART ENGINE] Resync failed, keeping previous view: {e.message}")

    async def flush(self) -> None:
        """Wait for queued operations and any scheduled refresh to finish"""
        await self._queue.join()
        await self._debouncer.flush()

    # Provisional adjustments

    def _apply(self, item_id: object, delta: int) -> PendingAdjustment:
        adjustment = PendingAdjustment(item_id=item_id, delta_quantity=delta)
        self._pending.append(adjustment)
        return adjustment

    def _settle(self, adjustment: Optional[PendingAdjustment]) -> None:
        self._settle_seq += 1
        if adjustment is not None:
            adjustment.settled_seq = self._settle_seq

    def _discard(self, adjustment: Optional[PendingAdjustment]) -> None:
        if adjustment is not None and adjustment in self._pending:
            self._pending.remove(adjustment)

    # Mutating operations

    def add_item(self, product_id: int, quantity: int = 1) -> "asyncio.Future[CartLine]":
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1.")
        self._require_consumer()
        return self._queue.submit(lambda: self._add_item(product_id, quantity))

    async def _add_item(self, product_id: int, quantity: int) -> CartLine:
        adjustment = self._apply(NEW_ITEM, quantity) if self._server_totals is not None else None
        try:
            line = await self._api.add_item(product_id, quantity)
        except Exception:
            self._discard(adjustment)
            await self._resync()
            raise

        self._settle(adjustment)
        await self._resync()
        logger.info(f"[CART ENGINE] Added product {product_id} x{quantity}")
        return line

    def update_quantity(self, item_id: int, quantity: int) -> "asyncio.Future[CartLine]":
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1.")
        self._require_consumer()
        return self._queue.submit(lambda: self._update_quantity(item_id, quantity))

    async def _update_quantity(self, item_id: int, quantity: int) -> CartLine:
        try:
            line = await self._api.update_item(item_id, quantity)
        except Exception:
            self._debouncer.cancel()
            await self._resync()
            raise

        self._settle(None)
        self._debouncer.schedule()
        return line

    def remove_item(self, item_id: int) -> "asyncio.Future[CartMessage]":
        self._require_consumer()
        return self._queue.submit(lambda: self._remove_item(item_id))

    async def _remove_item(self, item_id: int) -> CartMessage:
        # Quantity as known when the operation runs, not when it was queued
        line = self.line_for(item_id)
        adjustment = None
        if line is not None and self._server_totals is not None:
            adjustment = self._apply(item_id, -line.quantity)

        try:
            result = await self._api.remove_item(item_id)
        except Exception:
            self._discard(adjustment)
            self._debouncer.cancel()
            await self._resync()
            raise

        self._settle(adjustment)
        self._debouncer.schedule()
        return result

    def clear_cart(self) -> "asyncio.Future[CartMessage]":
        self._require_consumer()
        return self._queue.submit(self._clear_cart)

    async def _clear_cart(self) -> CartMessage:
        try:
            result = await self._api.clear_cart()
        except Exception:
            await self._resync()
            raise

        currency = self._server_totals.currency if self._server_totals else settings.CURRENCY
        self._reset(CartState.EMPTY)
        self._snapshot = CartSnapshot(limit=self._page_limit)
        self._server_totals = CartTotals(currency=currency)
        logger.info(f"[CART ENGINE] Cleared cart for user {self.session.user_id}")
        return result

    # Teardown

    async def aclose(self) -> None:
        """Logout: stop pending work, forget the cart, release the HTTP client"""
        await self._queue.aclose()
        await self._debouncer.aclose()
        self._reset(CartState.UNINITIALIZED)
        if self._owns_api:
            await self._api.close()
