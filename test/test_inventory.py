import asyncio

import pytest

from order_saga import InProcessEventBus, InventoryLedger, ReservationStatus, ValidationError

CATALOG = {
    "MacBook Pro": {"stock": 10, "price": 2399.99, "category": "laptops"},
    "iPad Air": {"stock": 7, "price": 599.99, "category": "tablets"},
    "Sold Out": {"stock": 0, "price": 1.0, "category": "misc"},
}


@pytest.fixture
def bus():
    return InProcessEventBus()


@pytest.fixture
def events(bus):
    """Collects (topic, payload) for every topic the ledger publishes."""
    seen = []
    for topic in (
        "order:inventory_reserved",
        "order:inventory_unavailable",
        "order:out_of_stock",
        "inventory:low_stock",
        "inventory:stock_added",
        "inventory:product_added",
    ):
        bus.subscribe(topic, lambda payload, topic=topic: seen.append((topic, payload)))
    return seen


@pytest.fixture
def ledger(bus):
    return InventoryLedger(bus, catalog=CATALOG).bind()


@pytest.mark.asyncio
async def test_reserve_decrements_stock_and_records_reservation(ledger, events):
    reservation = await ledger.reserve_for_order({"orderId": "INV123", "item": "MacBook Pro"})

    assert ledger.get_item("MacBook Pro").stock == 9
    assert reservation.status == ReservationStatus.RESERVED
    assert reservation.price == 2399.99
    assert reservation.quantity == 1
    stored = ledger.get_reservation("INV123")
    assert stored.status == "reserved"
    assert stored.reserved_at is not None
    assert events == [("order:inventory_reserved", {"orderId": "INV123", "item": "MacBook Pro"})]


@pytest.mark.asyncio
async def test_unknown_item_publishes_unavailable(ledger, events):
    order = {"orderId": "UNAVAIL123", "item": "Nonexistent Product"}
    assert await ledger.reserve_for_order(order) is None
    assert events == [("order:inventory_unavailable", order)]
    assert ledger.get_reservations() == []
    assert "Nonexistent Product" not in ledger._item_locks


@pytest.mark.asyncio
async def test_out_of_stock_leaves_stock_unchanged(ledger, events):
    order = {"orderId": "OOS1", "item": "Sold Out"}
    assert await ledger.reserve_for_order(order) is None
    assert ledger.get_item("Sold Out").stock == 0
    assert events == [("order:out_of_stock", order)]
    assert ledger.get_reservation("OOS1") is None


@pytest.mark.asyncio
async def test_second_reservation_for_same_order_is_ignored(ledger):
    await ledger.reserve_for_order({"orderId": "R1", "item": "MacBook Pro"})
    assert await ledger.reserve_for_order({"orderId": "R1", "item": "MacBook Pro"}) is None
    assert ledger.get_item("MacBook Pro").stock == 9
    assert len(ledger.get_reservations()) == 1


@pytest.mark.asyncio
async def test_low_stock_fires_at_threshold_only(ledger, events):
    # iPad Air starts at 7 with threshold 5: 7 -> 6 is above, 6 -> 5 is at the threshold.
    await ledger.reserve_for_order({"orderId": "L1", "item": "iPad Air"})
    assert [t for t, _ in events] == ["order:inventory_reserved"]

    await ledger.reserve_for_order({"orderId": "L2", "item": "iPad Air"})
    assert [t for t, _ in events] == [
        "order:inventory_reserved",
        "order:inventory_reserved",
        "inventory:low_stock",
    ]
    assert events[-1][1] == {"item": "iPad Air", "currentStock": 5, "threshold": 5}


@pytest.mark.asyncio
async def test_custom_low_stock_threshold(bus, events):
    ledger = InventoryLedger(bus, catalog={"Widget": {"stock": 3}}, low_stock_threshold=1)
    await ledger.reserve_for_order({"orderId": "W1", "item": "Widget"})
    assert "inventory:low_stock" not in [t for t, _ in events]
    await ledger.reserve_for_order({"orderId": "W2", "item": "Widget"})
    assert events[-1] == ("inventory:low_stock", {"item": "Widget", "currentStock": 1, "threshold": 1})


@pytest.mark.asyncio
async def test_concurrent_reservations_never_oversell(bus, events):
    # Nothing in the reservation awaits, so this checks the single-loop outcome.
    ledger = InventoryLedger(bus, catalog={"Last Units": {"stock": 3}})
    results = await asyncio.gather(
        *(ledger.reserve_for_order({"orderId": f"C{i}", "item": "Last Units"}) for i in range(10))
    )

    assert sum(r is not None for r in results) == 3
    assert ledger.get_item("Last Units").stock == 0
    assert len(ledger.get_reservations_by_status("reserved")) == 3
    topics = [t for t, _ in events]
    assert topics.count("order:inventory_reserved") == 3
    assert topics.count("order:out_of_stock") == 7


@pytest.mark.asyncio
async def test_reservations_wait_for_the_item_lock(bus, events):
    ledger = InventoryLedger(bus, catalog={"Last Units": {"stock": 3}})
    lock = ledger._lock_for("Last Units")

    await lock.acquire()
    tasks = [
        asyncio.create_task(ledger.reserve_for_order({"orderId": f"C{i}", "item": "Last Units"}))
        for i in range(5)
    ]
    await asyncio.sleep(0.01)

    assert not any(t.done() for t in tasks)
    assert ledger.get_item("Last Units").stock == 3
    assert events == []

    lock.release()
    results = await asyncio.wait_for(asyncio.gather(*tasks), timeout=2)

    assert sum(r is not None for r in results) == 3
    assert ledger.get_item("Last Units").stock == 0
    assert [t for t, _ in events].count("order:out_of_stock") == 2


@pytest.mark.asyncio
async def test_delivery_fulfills_reservation_once(ledger, bus):
    await ledger.reserve_for_order({"orderId": "D1", "item": "MacBook Pro"})

    await bus.publish("order:delivered", {"orderId": "D1"})
    fulfilled = ledger.get_reservation("D1")
    assert fulfilled.status == ReservationStatus.FULFILLED
    assert fulfilled.fulfilled_at is not None

    # Delivering again is a no-op and keeps the first fulfillment time.
    assert await ledger.handle_delivery({"orderId": "D1"}) is None
    assert ledger.get_reservation("D1").fulfilled_at == fulfilled.fulfilled_at


@pytest.mark.asyncio
async def test_delivery_without_reservation_is_noop(ledger, bus):
    await bus.publish("order:delivered", {"orderId": "nothing-here"})
    assert bus.failures == []
    assert ledger.get_reservations() == []


@pytest.mark.asyncio
async def test_add_stock(ledger, events):
    total = await ledger.add_stock("MacBook Pro", 5)
    assert total == 15
    assert events == [("inventory:stock_added", {"item": "MacBook Pro", "added": 5, "total": 15})]


@pytest.mark.asyncio
async def test_add_stock_to_unknown_item_is_noop(ledger, events):
    assert await ledger.add_stock("Ghost", 5) is None
    assert events == []
    assert "Ghost" not in ledger._item_locks


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
async def test_add_stock_rejects_bad_quantity(ledger, quantity):
    with pytest.raises(ValidationError):
        await ledger.add_stock("MacBook Pro", quantity)
    assert ledger.get_item("MacBook Pro").stock == 10


@pytest.mark.asyncio
async def test_add_product_with_defaults(ledger, events):
    item = await ledger.add_product("HomePod", {"price": 299.0})
    assert (item.stock, item.price, item.category) == (0, 299.0, "general")
    assert events == [("inventory:product_added", {"item": "HomePod", "price": 299.0})]
    assert not ledger.is_available("HomePod")


@pytest.mark.asyncio
async def test_add_product_rejects_negative_stock(ledger):
    with pytest.raises(ValidationError):
        await ledger.add_product("Broken", {"stock": -1})
    assert ledger.get_item("Broken") is None


@pytest.mark.asyncio
async def test_queries(ledger):
    await ledger.reserve_for_order({"orderId": "Q1", "item": "iPad Air"})
    await ledger.reserve_for_order({"orderId": "Q2", "item": "iPad Air"})
    await ledger.handle_delivery({"orderId": "Q1"})

    assert [i.name for i in ledger.get_inventory()] == ["MacBook Pro", "iPad Air", "Sold Out"]
    assert [i.name for i in ledger.get_low_stock_items()] == ["iPad Air", "Sold Out"]
    assert [i.name for i in ledger.get_inventory_by_category("laptops")] == ["MacBook Pro"]
    assert [r.order_id for r in ledger.get_reservations_by_status("fulfilled")] == ["Q1"]
    assert [r.order_id for r in ledger.get_reservations_by_status("reserved")] == ["Q2"]
    assert ledger.is_available("MacBook Pro", 10)
    assert not ledger.is_available("MacBook Pro", 11)
    assert not ledger.is_available("Nonexistent")


def test_inventory_listing_uses_item_key(ledger):
    assert ledger.get_inventory()[0].to_payload() == {
        "item": "MacBook Pro",
        "stock": 10,
        "price": 2399.99,
        "category": "laptops",
    }


@pytest.mark.asyncio
async def test_unbind_stops_reacting_to_orders(ledger, bus):
    ledger.unbind()
    await bus.publish("order:created", {"orderId": "X", "item": "MacBook Pro"})
    assert ledger.get_item("MacBook Pro").stock == 10
