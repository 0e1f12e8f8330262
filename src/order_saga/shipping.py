"""
Shipping side of the fulfillment saga.

Every `order:created` event starts a per-order state machine
`shipped -> delivered`. Both transitions happen after a carrier delay, and
both delays are tasks on the shared `TaskScheduler`, never sleeps inside the
dispatch of the triggering event.
"""
import logging
import random
import time
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from .models import Shipment, ShipmentStatus, utcnow
from .protocols import EventBus, Subscription
from .scheduler import TaskScheduler

TRACKING_PREFIX = "TRK"


class ShippingSaga:
    def __init__(
        self,
        bus: EventBus,
        scheduler: TaskScheduler,
        ship_delay: Tuple[float, float] = (0.5, 1.5),
        delivery_delay: Tuple[float, float] = (4.0, 6.0),
        delivery_lead_days: int = 3,
        rng: Optional[random.Random] = None,
    ):
        self.bus = bus
        self.scheduler = scheduler
        self.ship_delay = ship_delay
        self.delivery_delay = delivery_delay
        self.delivery_lead_days = delivery_lead_days
        self._rng = rng or random.Random()
        self._shipments: Dict[str, Shipment] = {}
        self._tracking_numbers: Set[str] = set()
        self._subscriptions: List[Subscription] = []

    def bind(self) -> "ShippingSaga":
        self._subscriptions = [self.bus.subscribe("order:created", self.process_shipping)]
        return self

    def unbind(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

    def _draw(self, bounds: Tuple[float, float]) -> float:
        low, high = bounds
        return self._rng.uniform(low, high)

    def process_shipping(self, order_data: Mapping[str, Any]) -> None:
        order = dict(order_data)
        self.scheduler.schedule(
            self._draw(self.ship_delay),
            lambda: self.ship_order(order),
            name=f"ship:{order.get('orderId')}",
        )

    def generate_tracking_number(self) -> str:
        while True:
            millis = time.time_ns() // 1_000_000
            candidate = f"{TRACKING_PREFIX}{millis}{self._rng.randrange(1000):03d}"
            if candidate not in self._tracking_numbers:
                self._tracking_numbers.add(candidate)
                return candidate

    async def ship_order(self, order_data: Mapping[str, Any]) -> Optional[Shipment]:
        order_id = order_data["orderId"]
        if order_id in self._shipments:
            logging.warning(f"Order {order_id} already shipped, ignoring")
            return None

        shipped_at = utcnow()
        shipment = Shipment(
            order_id=order_id,
            address=order_data.get("address"),
            item=order_data.get("item"),
            tracking_number=self.generate_tracking_number(),
            status=ShipmentStatus.SHIPPED,
            shipped_at=shipped_at,
            estimated_delivery=shipped_at + timedelta(days=self.delivery_lead_days),
        )
        self._shipments[order_id] = shipment
        logging.info(f"Order shipped: {order_id}, tracking {shipment.tracking_number}")

        await self.bus.publish("order:shipped", {**order_data, **shipment.to_payload()})
        self.scheduler.schedule(
            self._draw(self.delivery_delay),
            lambda: self.deliver_order(order_id),
            name=f"deliver:{order_id}",
        )
        return shipment.model_copy()

    async def deliver_order(self, order_id: str) -> Optional[Shipment]:
        shipment = self._shipments.get(order_id)
        if shipment is None or shipment.status == ShipmentStatus.DELIVERED:
            return None
        shipment.status = ShipmentStatus.DELIVERED
        shipment.delivered_at = utcnow()
        logging.info(f"Order delivered: {order_id}")
        await self.bus.publish("order:delivered", shipment.to_payload())
        return shipment.model_copy()

    def get_shipment(self, order_id: str) -> Optional[Shipment]:
        shipment = self._shipments.get(order_id)
        return shipment.model_copy() if shipment else None

    def get_all_shipments(self) -> List[Shipment]:
        return [s.model_copy() for s in self._shipments.values()]

    def track_shipment(self, tracking_number: str) -> Optional[Shipment]:
        for shipment in self._shipments.values():
            if shipment.tracking_number == tracking_number:
                return shipment.model_copy()
        return None

    def get_shipments_by_status(self, status: str) -> List[Shipment]:
        return [s.model_copy() for s in self._shipments.values() if s.status == status]
