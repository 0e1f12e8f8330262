import pytest

from order_saga import EmailNotifier, InProcessEventBus


@pytest.fixture
def bus():
    return InProcessEventBus()


@pytest.fixture
def notifier(bus):
    return EmailNotifier(bus).bind()


@pytest.mark.asyncio
async def test_confirmation_on_order_created(bus, notifier):
    await bus.publish("order:created", {"orderId": "EMAIL123", "email": "test@example.com", "item": "Test Product"})

    history = notifier.get_email_history()
    assert len(history) == 1
    email = history[0]
    assert email.type == "confirmation"
    assert email.to == "test@example.com"
    assert email.subject == "Order Confirmation - EMAIL123"
    assert "Test Product" in email.body


@pytest.mark.asyncio
async def test_shipping_notification_carries_tracking(bus, notifier):
    await bus.publish(
        "order:shipped",
        {
            "orderId": "S1",
            "email": "a@x.com",
            "item": "iPad Air",
            "address": "1 Main St",
            "trackingNumber": "TRK123",
        },
    )
    email = notifier.get_emails_by_type("shipping")[0]
    assert email.tracking_number == "TRK123"
    assert "1 Main St" in email.body
    assert email.subject == "Your order S1 has shipped!"


@pytest.mark.asyncio
@pytest.mark.parametrize("status,notified", [("delivered", True), ("cancelled", True), ("created", False), ("shipped", False)])
async def test_status_updates_are_filtered(bus, notifier, status, notified):
    await bus.publish(
        "order:status_updated",
        {"orderId": "U1", "status": status, "order": {"orderId": "U1", "email": "a@x.com"}},
    )
    emails = notifier.get_emails_by_type("status_update")
    assert bool(emails) is notified
    if notified:
        assert emails[0].status == status
        assert emails[0].to == "a@x.com"


@pytest.mark.asyncio
async def test_malformed_event_does_not_break_bus(bus, notifier):
    other = []
    bus.subscribe("order:created", other.append)

    await bus.publish("order:created", {"email": "no-id@x.com"})

    assert notifier.get_email_history() == []
    assert len(bus.failures) == 1
    assert len(other) == 1


@pytest.mark.asyncio
async def test_emails_for_order(bus, notifier):
    await bus.publish("order:created", {"orderId": "A", "email": "a@x.com", "item": "x"})
    await bus.publish("order:created", {"orderId": "B", "email": "b@x.com", "item": "y"})
    assert [e.to for e in notifier.get_emails_for_order("B")] == ["b@x.com"]
