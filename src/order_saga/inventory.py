"""
Inventory ledger: stock counts and the reservations held against them.

The ledger reacts to `order:created` by reserving one unit for the order and
to `order:delivered` by fulfilling that reservation. Running out of stock, or
being asked for an item it has never heard of, is a normal saga outcome and is
reported as an event rather than raised.
"""
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

import pydantic

from .errors import ValidationError
from .models import Reservation, ReservationStatus, StockItem, utcnow
from .protocols import EventBus, Subscription

DEFAULT_LOW_STOCK_THRESHOLD = 5


class InventoryLedger:
    def __init__(
        self,
        bus: EventBus,
        catalog: Optional[Mapping[str, Mapping[str, Any]]] = None,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ):
        self.bus = bus
        self.low_stock_threshold = low_stock_threshold
        self._items: Dict[str, StockItem] = {}
        self._reservations: Dict[str, Reservation] = {}
        self._item_locks: Dict[str, asyncio.Lock] = {}
        self._subscriptions: List[Subscription] = []
        for name, data in (catalog or {}).items():
            self._items[name] = self._build_item(name, data)

    def bind(self) -> "InventoryLedger":
        self._subscriptions = [
            self.bus.subscribe("order:created", self.reserve_for_order),
            self.bus.subscribe("order:delivered", self.handle_delivery),
        ]
        return self

    def unbind(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

    @staticmethod
    def _build_item(name: str, data: Mapping[str, Any]) -> StockItem:
        try:
            return StockItem(
                name=name,
                stock=data.get("stock") or 0,
                price=data.get("price") or 0,
                category=data.get("category") or "general",
            )
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid product {name}: {e}") from e

    def _lock_for(self, item: str) -> asyncio.Lock:
        # setdefault has no await, so two reservers always share one lock per item.
        return self._item_locks.setdefault(item, asyncio.Lock())

    async def reserve_for_order(self, order_data: Mapping[str, Any]) -> Optional[Reservation]:
        order_id = order_data.get("orderId")
        item_name = order_data.get("item")

        if item_name not in self._items:
            logging.info(f"Item not found: {item_name}")
            await self.bus.publish("order:inventory_unavailable", dict(order_data))
            return None

        async with self._lock_for(item_name):
            item = self._items[item_name]
            if item.stock <= 0:
                outcome = "order:out_of_stock"
            elif order_id in self._reservations:
                logging.warning(f"Order {order_id} already holds a reservation, ignoring")
                return None
            else:
                item.stock -= 1
                reservation = Reservation(
                    order_id=order_id,
                    item=item_name,
                    quantity=1,
                    price=item.price,
                    status=ReservationStatus.RESERVED,
                    reserved_at=utcnow(),
                )
                self._reservations[order_id] = reservation
                remaining = item.stock
                outcome = "order:inventory_reserved"

        # Events go out after the lock is released so a handler may reserve again.
        if outcome == "order:out_of_stock":
            logging.info(f"Out of stock: {item_name}")
            await self.bus.publish(outcome, dict(order_data))
            return None

        logging.info(f"Item reserved: {item_name}, stock remaining: {remaining}")
        await self.bus.publish(outcome, dict(order_data))
        if remaining <= self.low_stock_threshold:
            await self.bus.publish(
                "inventory:low_stock",
                {"item": item_name, "currentStock": remaining, "threshold": self.low_stock_threshold},
            )
        return reservation.model_copy()

    async def handle_delivery(self, shipment_data: Mapping[str, Any]) -> Optional[Reservation]:
        order_id = shipment_data.get("orderId")
        reservation = self._reservations.get(order_id)
        if reservation is None or reservation.status == ReservationStatus.FULFILLED:
            return None
        reservation.status = ReservationStatus.FULFILLED
        reservation.fulfilled_at = utcnow()
        logging.info(f"Reservation fulfilled for order: {order_id}")
        return reservation.model_copy()

    async def add_stock(self, item_name: str, quantity: int) -> Optional[int]:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError(f"Stock quantity must be a positive integer, got {quantity!r}")
        if item_name not in self._items:
            logging.warning(f"Cannot add stock to unknown item: {item_name}")
            return None
        async with self._lock_for(item_name):
            item = self._items[item_name]
            item.stock += quantity
            total = item.stock
        logging.info(f"Stock added: {item_name} +{quantity}, total: {total}")
        await self.bus.publish(
            "inventory:stock_added", {"item": item_name, "added": quantity, "total": total}
        )
        return total

    async def add_product(self, name: str, data: Mapping[str, Any]) -> StockItem:
        item = self._build_item(name, data)
        async with self._lock_for(name):
            self._items[name] = item
        logging.info(f"New product added: {name}")
        await self.bus.publish("inventory:product_added", {"item": name, **data})
        return item.model_copy()

    def get_inventory(self) -> List[StockItem]:
        return [i.model_copy() for i in self._items.values()]

    def get_item(self, name: str) -> Optional[StockItem]:
        item = self._items.get(name)
        return item.model_copy() if item else None

    def get_low_stock_items(self) -> List[StockItem]:
        return [i for i in self.get_inventory() if i.stock <= self.low_stock_threshold]

    def get_inventory_by_category(self, category: str) -> List[StockItem]:
        return [i for i in self.get_inventory() if i.category == category]

    def get_reservations(self) -> List[Reservation]:
        return [r.model_copy() for r in self._reservations.values()]

    def get_reservation(self, order_id: str) -> Optional[Reservation]:
        reservation = self._reservations.get(order_id)
        return reservation.model_copy() if reservation else None

    def get_reservations_by_status(self, status: str) -> List[Reservation]:
        return [r for r in self.get_reservations() if r.status == status]

    def is_available(self, item_name: str, quantity: int = 1) -> bool:
        item = self._items.get(item_name)
        return item is not None and item.stock >= quantity
