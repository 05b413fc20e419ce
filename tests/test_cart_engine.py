"""
Tests for the storefront cart engine
"""
import asyncio

import pytest

from marketplace.client.cart_engine import CartEngine, CartState, NEW_ITEM
from marketplace.client.session import ConsumerSession
from marketplace.core.exceptions import AuthorizationError, CollaboratorError, ValidationError

CONSUMER = ConsumerSession(user_id="consumer-1", role="consumer", token="t")
DEBOUNCE = 0.05


@pytest.fixture
async def engine(fake_cart_api):
    engine = CartEngine(CONSUMER, fake_cart_api, debounce_seconds=DEBOUNCE)
    yield engine
    await engine.aclose()


async def _two_lines(engine, api):
    """Cart with Product X x2 and Product Y x1, call log cleared"""
    await engine.refresh()
    await engine.add_item(1, 2)
    await engine.add_item(2, 1)
    api.calls.clear()
    return engine.items[0].item_id, engine.items[1].item_id


class TestRefresh:
    """Loading the cart into the engine"""

    async def test_first_refresh_moves_to_ready(self, engine, fake_cart_api):
        assert engine.state == CartState.UNINITIALIZED
        assert engine.loading

        await engine.refresh()

        assert engine.state == CartState.READY
        assert not engine.loading
        assert engine.items == []
        assert engine.totals.total_items == 0
        assert fake_cart_api.count("get_cart") == 1
        assert fake_cart_api.count("get_totals") == 1

    async def test_refresh_without_session_clears_and_skips_network(self, fake_cart_api):
        engine = CartEngine(None, fake_cart_api)

        await engine.refresh()

        assert engine.state == CartState.EMPTY
        assert engine.snapshot is None
        assert engine.totals is None
        assert fake_cart_api.calls == []

    async def test_refresh_for_vendor_session_clears_state(self, fake_cart_api):
        engine = CartEngine(ConsumerSession(user_id="v-1", role="vendor"), fake_cart_api)

        await engine.refresh()

        assert engine.state == CartState.EMPTY
        assert fake_cart_api.calls == []

    async def test_failed_first_load_returns_to_uninitialized(self, engine, fake_cart_api):
        fake_cart_api.fail_next("get_cart")

        with pytest.raises(CollaboratorError):
            await engine.refresh()

        assert engine.state == CartState.UNINITIALIZED
        assert engine.snapshot is None

    async def test_older_fetch_landing_last_is_dropped(self, engine, fake_cart_api):
        """A slow refresh does not overwrite the view a later refresh applied"""
        item_a, _ = await _two_lines(engine, fake_cart_api)
        held = asyncio.Event()
        fake_cart_api.read_gate = held
        slow = asyncio.create_task(engine.refresh())
        await asyncio.sleep(0.01)
        fake_cart_api.read_gate = None

        await engine.add_item(1, 1)
        assert engine.totals.total_items == 4

        held.set()
        await slow

        assert engine.totals.total_items == 4
        assert engine.line_for(item_a).quantity == 3
        assert engine.is_consistent


class TestPreconditions:
    """Checks made before anything is queued"""

    async def test_non_consumer_rejected_before_network(self, fake_cart_api):
        engine = CartEngine(ConsumerSession(user_id="v-1", role="vendor"), fake_cart_api)

        with pytest.raises(AuthorizationError):
            engine.add_item(1)
        with pytest.raises(AuthorizationError):
            engine.clear_cart()

        assert fake_cart_api.calls == []

    async def test_add_rejects_zero_quantity(self, engine, fake_cart_api):
        with pytest.raises(ValidationError):
            engine.add_item(1, 0)
        assert fake_cart_api.calls == []

    async def test_update_to_zero_is_rejected_and_cart_unchanged(self, engine, fake_cart_api):
        """Quantity 0 is refused before any call"""
        item_id, _ = await _two_lines(engine, fake_cart_api)
        before = engine.snapshot

        with pytest.raises(ValidationError):
            engine.update_quantity(item_id, 0)

        assert fake_cart_api.calls == []
        assert engine.snapshot is before
        assert engine.line_for(item_id).quantity == 2


class TestAddItem:

    async def test_add_to_empty_cart(self, engine):
        """2 x $10 into an empty cart"""
        await engine.refresh()

        line = await engine.add_item(1, 2)

        assert line.quantity == 2
        assert engine.totals.total_items == 2
        assert engine.totals.subtotal == 20.00
        assert engine.is_consistent

    async def test_count_moves_before_confirmation(self, engine, fake_cart_api):
        await engine.refresh()
        fake_cart_api.gate = asyncio.Event()

        pending = engine.add_item(1, 3)
        await asyncio.sleep(0.01)

        assert engine.totals.total_items == 3
        assert engine.server_totals.total_items == 0
        # Price fields only move on refresh
        assert engine.totals.subtotal == 0.0
        assert [a.item_id for a in engine.pending_adjustments] == [NEW_ITEM]
        assert not engine.is_consistent

        fake_cart_api.gate.set()
        await pending

        assert engine.totals.total_items == 3
        assert engine.totals.subtotal == 30.00
        assert engine.pending_adjustments == ()

    async def test_failed_add_rolls_back_count(self, engine, fake_cart_api):
        """A failed add leaves the count where it was"""
        await engine.refresh()
        await engine.add_item(1, 1)
        fake_cart_api.calls.clear()
        fake_cart_api.fail_next("add_item")

        with pytest.raises(CollaboratorError):
            await engine.add_item(2, 3)

        assert engine.totals.total_items == 1
        assert engine.pending_adjustments == ()
        assert {name for name, _ in fake_cart_api.calls[1:]} == {"get_cart", "get_totals"}

    async def test_operation_error_raised_when_resync_also_fails(self, engine, fake_cart_api):
        await engine.refresh()
        fake_cart_api.fail_next("add_item", CollaboratorError("add exploded"))
        fake_cart_api.fail_next("get_cart")

        with pytest.raises(CollaboratorError, match="add exploded"):
            await engine.add_item(1, 1)

        assert engine.state == CartState.READY


class TestUpdateQuantity:

    async def test_burst_of_updates_refreshes_once(self, engine, fake_cart_api):
        """Five edits inside the quiet period, one refresh"""
        item_id, _ = await _two_lines(engine, fake_cart_api)

        for quantity in range(3, 8):
            await engine.update_quantity(item_id, quantity)

        assert fake_cart_api.count("update_item") == 5
        assert fake_cart_api.count("get_cart") == 0

        await engine.flush()

        assert fake_cart_api.count("get_cart") == 1
        assert engine.line_for(item_id).quantity == 7
        assert engine.totals.total_items == 8

    async def test_unawaited_updates_also_collapse(self, engine, fake_cart_api):
        item_id, _ = await _two_lines(engine, fake_cart_api)

        futures = [engine.update_quantity(item_id, q) for q in (4, 5, 6)]
        await asyncio.gather(*futures)
        await engine.flush()

        assert fake_cart_api.count("get_cart") == 1
        assert engine.line_for(item_id).quantity == 6

    async def test_failed_update_refreshes_immediately(self, engine, fake_cart_api):
        item_id, _ = await _two_lines(engine, fake_cart_api)
        await engine.update_quantity(item_id, 4)
        fake_cart_api.fail_next("update_item")

        with pytest.raises(CollaboratorError):
            await engine.update_quantity(item_id, 9)

        assert fake_cart_api.count("get_cart") == 1
        assert engine.line_for(item_id).quantity == 4

        # The debounced refresh from the first update was dropped
        await asyncio.sleep(DEBOUNCE * 2)
        assert fake_cart_api.count("get_cart") == 1


class TestRemoveItem:

    async def test_remove_decrements_optimistically(self, engine, fake_cart_api):
        item_id, _ = await _two_lines(engine, fake_cart_api)
        fake_cart_api.gate = asyncio.Event()

        pending = engine.remove_item(item_id)
        await asyncio.sleep(0.01)
        assert engine.totals.total_items == 1

        fake_cart_api.gate.set()
        await pending
        assert engine.totals.total_items == 1
        assert engine.server_totals.total_items == 3

        await engine.flush()
        assert engine.server_totals.total_items == 1
        assert engine.line_for(item_id) is None
        assert engine.is_consistent

    async def test_failed_remove_restores_count(self, engine, fake_cart_api):
        item_id, _ = await _two_lines(engine, fake_cart_api)
        fake_cart_api.fail_next("remove_item")

        with pytest.raises(CollaboratorError):
            await engine.remove_item(item_id)

        assert engine.totals.total_items == 3
        assert engine.line_for(item_id) is not None
        assert fake_cart_api.count("get_cart") == 1


class TestClearCart:

    async def test_clear_empties_without_refresh(self, engine, fake_cart_api):
        await _two_lines(engine, fake_cart_api)

        await engine.clear_cart()

        assert engine.state == CartState.EMPTY
        assert engine.items == []
        assert engine.totals.total_items == 0
        assert engine.totals.currency == "CAD"
        assert fake_cart_api.count("get_cart") == 0

    async def test_refresh_in_flight_does_not_undo_clear(self, engine, fake_cart_api):
        """A debounced fetch that started before the clear lands after it"""
        item_id, _ = await _two_lines(engine, fake_cart_api)
        await engine.update_quantity(item_id, 5)
        fake_cart_api.read_gate = asyncio.Event()
        await asyncio.sleep(DEBOUNCE * 2)
        assert fake_cart_api.count("get_cart") == 1

        await engine.clear_cart()
        assert engine.state == CartState.EMPTY

        fake_cart_api.read_gate.set()
        await engine.flush()

        assert engine.state == CartState.EMPTY
        assert engine.items == []
        assert engine.totals.total_items == 0
        assert fake_cart_api.lines == {}
        assert engine.is_consistent

    async def test_failed_clear_resyncs(self, engine, fake_cart_api):
        await _two_lines(engine, fake_cart_api)
        fake_cart_api.fail_next("clear_cart")

        with pytest.raises(CollaboratorError):
            await engine.clear_cart()

        assert engine.state == CartState.READY
        assert len(engine.items) == 2
        assert fake_cart_api.count("get_cart") == 1


class TestOrdering:

    async def test_mutations_reach_service_in_call_order(self, engine, fake_cart_api):
        """Calls issued without awaiting run one at a time, FIFO"""
        item_a, item_b = await _two_lines(engine, fake_cart_api)
        fake_cart_api.gate = asyncio.Event()

        first = engine.update_quantity(item_a, 5)
        second = engine.update_quantity(item_b, 2)
        third = engine.remove_item(item_a)
        await asyncio.sleep(0.01)

        assert fake_cart_api.mutations() == [("update_item", (item_a, 5))]

        fake_cart_api.gate.set()
        await asyncio.gather(first, second, third)

        assert fake_cart_api.mutations() == [
            ("update_item", (item_a, 5)),
            ("update_item", (item_b, 2)),
            ("remove_item", (item_a,)),
        ]
        assert fake_cart_api.max_in_flight == 1

    async def test_failure_does_not_block_later_operations(self, engine, fake_cart_api):
        await engine.refresh()

        bad = engine.update_quantity(999, 2)
        good = engine.add_item(1, 1)
        results = await asyncio.gather(bad, good, return_exceptions=True)

        assert isinstance(results[0], CollaboratorError)
        assert results[1].quantity == 1
        assert engine.totals.total_items == 1

    async def test_totals_match_lines_after_mixed_sequence(self, engine, fake_cart_api):
        """Count equals the sum of line quantities once refreshed"""
        item_a, item_b = await _two_lines(engine, fake_cart_api)

        await engine.update_quantity(item_b, 4)
        await engine.remove_item(item_a)
        await engine.add_item(1, 3)
        await engine.update_quantity(item_b, 2)
        await engine.flush()

        assert engine.totals.total_items == engine.snapshot.item_quantity
        assert engine.totals.total_items == 5
        assert engine.is_consistent


class TestLifecycle:

    async def test_close_fails_queued_operations(self, fake_cart_api):
        engine = CartEngine(CONSUMER, fake_cart_api, debounce_seconds=DEBOUNCE)
        await engine.refresh()
        fake_cart_api.gate = asyncio.Event()

        first = engine.add_item(1, 1)
        second = engine.add_item(2, 1)
        await asyncio.sleep(0.01)
        await engine.aclose()

        for future in (first, second):
            with pytest.raises(CollaboratorError):
                await future
        assert engine.state == CartState.UNINITIALIZED
        assert engine.snapshot is None

        with pytest.raises(CollaboratorError):
            engine.add_item(1, 1)

    async def test_context_manager_closes_owned_api(self, fake_cart_api):
        async with CartEngine(CONSUMER, fake_cart_api, owns_api=True) as engine:
            await engine.refresh()

        assert fake_cart_api.closed
