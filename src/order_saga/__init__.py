"""
Event-driven order fulfillment saga on an in-process publish/subscribe bus.
"""
from .bus import InProcessEventBus, Subscription
from .config import SagaConfig, load_config
from .errors import DuplicateOrderError, HandlerError, OrderSagaError, ValidationError
from .inventory import InventoryLedger
from .journal import MemoryJournal, SQLiteJournal
from .models import (
    JournalEntry,
    Notification,
    Order,
    OrderStatus,
    Reservation,
    ReservationStatus,
    Shipment,
    ShipmentStatus,
    StockItem,
)
from .notifications import EmailNotifier
from .orders import OrderRegistry
from .scheduler import TaskScheduler
from .shipping import ShippingSaga
from .system import OrderSystem, order_system

__all__ = [
    "InProcessEventBus",
    "Subscription",
    "SagaConfig",
    "load_config",
    "OrderSagaError",
    "ValidationError",
    "DuplicateOrderError",
    "HandlerError",
    "InventoryLedger",
    "MemoryJournal",
    "SQLiteJournal",
    "JournalEntry",
    "Notification",
    "Order",
    "OrderStatus",
    "Reservation",
    "ReservationStatus",
    "Shipment",
    "ShipmentStatus",
    "StockItem",
    "EmailNotifier",
    "OrderRegistry",
    "TaskScheduler",
    "ShippingSaga",
    "OrderSystem",
    "order_system",
]
