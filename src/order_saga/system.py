"""
This module assembles the services into a running order system.

`order_system` is an async context manager that owns every shared resource
(journal, bus, scheduler) for one configuration and yields an `OrderSystem`
whose services are already subscribed to each other's events. Leaving the
context shuts the scheduler down before the journal is closed, so a pending
shipment or delivery can never publish into torn-down state.
"""
import logging
import random
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Union

from .bus import InProcessEventBus
from .config import SagaConfig, load_config
from .inventory import InventoryLedger
from .journal import create_journal
from .models import OrderStatus
from .notifications import EmailNotifier
from .orders import OrderRegistry
from .protocols import Journal
from .scheduler import TaskScheduler
from .shipping import ShippingSaga


class OrderSystem:
    def __init__(
        self,
        config: SagaConfig,
        journal: Journal,
        bus: InProcessEventBus,
        scheduler: TaskScheduler,
        orders: OrderRegistry,
        inventory: InventoryLedger,
        shipping: ShippingSaga,
        email: EmailNotifier,
    ):
        self.config = config
        self.journal = journal
        self.bus = bus
        self.scheduler = scheduler
        self.orders = orders
        self.inventory = inventory
        self.shipping = shipping
        self.email = email

    async def settle(self):
        """Waits for every scheduled shipment and delivery to run."""
        await self.scheduler.join()


@asynccontextmanager
async def order_system(
    config: Union[SagaConfig, Mapping[str, Any], None] = None,
    *,
    catalog: Optional[Mapping[str, Mapping[str, Any]]] = None,
    rng: Optional[random.Random] = None,
) -> AsyncIterator[OrderSystem]:
    if not isinstance(config, SagaConfig):
        config = load_config(config)

    journal = create_journal(config.journal_path)
    await journal.start()
    bus = InProcessEventBus(journal=journal, handler_timeout=config.handler_timeout)
    scheduler = TaskScheduler()

    orders = OrderRegistry(bus)
    email = EmailNotifier(bus).bind()
    shipping = ShippingSaga(
        bus,
        scheduler,
        ship_delay=config.ship_delay,
        delivery_delay=config.delivery_delay,
        delivery_lead_days=config.delivery_lead_days,
        rng=rng,
    ).bind()
    inventory = InventoryLedger(
        bus, catalog=catalog, low_stock_threshold=config.low_stock_threshold
    ).bind()

    async def mark_delivered(shipment: Dict[str, Any]):
        await orders.update_order_status(shipment["orderId"], OrderStatus.DELIVERED)

    bus.subscribe("order:delivered", mark_delivered)

    system = OrderSystem(config, journal, bus, scheduler, orders, inventory, shipping, email)
    logging.info(f"Order system started with topics: {', '.join(bus.topics())}")
    try:
        yield system
    finally:
        await scheduler.shutdown()
        await journal.close()
        logging.info("Order system stopped")
