import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

import pydantic

from .errors import DuplicateOrderError, ValidationError
from .models import Order, OrderStatus, utcnow
from .protocols import EventBus

REQUIRED_FIELDS = (("orderId", "order_id"), ("email", "email"), ("item", "item"))


class OrderRegistry:
    """
    Owns the canonical order records. Creating an order publishes
    `order:created`, which is where every saga starts.
    """

    def __init__(self, bus: EventBus):
        self.bus = bus
        self._orders: Dict[str, Order] = {}
        self._lock = asyncio.Lock()

    async def create_order(self, data: Mapping[str, Any]) -> Order:
        missing = [alias for alias, name in REQUIRED_FIELDS if not (data.get(alias) or data.get(name))]
        if missing:
            raise ValidationError(f"Missing required order fields: {', '.join(missing)}")

        fields = {k: v for k, v in data.items() if k not in ("status", "timestamp", "lastUpdated")}
        try:
            order = Order.model_validate({**fields, "status": OrderStatus.CREATED.value, "timestamp": utcnow()})
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid order data: {e}") from e

        # Check and insert with no suspension point in between.
        async with self._lock:
            if order.order_id in self._orders:
                raise DuplicateOrderError(order.order_id)
            self._orders[order.order_id] = order

        logging.info(f"Order created: {order.order_id} ({order.item})")
        await self.bus.publish("order:created", order.to_payload())
        return order.model_copy()

    async def update_order_status(self, order_id: str, status: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        if order is None:
            return None
        order.status = status.value if isinstance(status, OrderStatus) else status
        order.last_updated = utcnow()
        logging.info(f"Order {order_id} status updated to {order.status}")
        await self.bus.publish(
            "order:status_updated",
            {"orderId": order_id, "status": order.status, "order": order.to_payload()},
        )
        return order.model_copy()

    def get_order(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy() if order else None

    def get_all_orders(self) -> List[Order]:
        return [o.model_copy() for o in self._orders.values()]

    def get_orders_by_status(self, status: str) -> List[Order]:
        return [o.model_copy() for o in self._orders.values() if o.status == status]
