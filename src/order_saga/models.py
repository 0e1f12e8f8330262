"""
This module defines the core data models for the order saga using Pydantic.
Attributes are snake_case in Python; the camelCase aliases are the names
other services see in event payloads, so every payload is produced with
`model_dump(by_alias=True, mode="json")`.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    CREATED = "created"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ReservationStatus(str, Enum):
    RESERVED = "reserved"
    FULFILLED = "fulfilled"


class ShipmentStatus(str, Enum):
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class NotificationType(str, Enum):
    CONFIRMATION = "confirmation"
    SHIPPING = "shipping"
    STATUS_UPDATE = "status_update"


class Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class Order(Record):
    # Callers may attach their own fields; they travel with the order.
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, extra="allow")

    order_id: str = Field(alias="orderId", min_length=1)
    email: str = Field(min_length=1)
    item: str = Field(min_length=1)
    address: Optional[str] = None
    status: str = OrderStatus.CREATED.value
    timestamp: datetime = Field(default_factory=utcnow)
    last_updated: Optional[datetime] = Field(default=None, alias="lastUpdated")


class StockItem(Record):
    name: str = Field(alias="item")
    stock: int = Field(default=0, ge=0)
    price: float = Field(default=0, ge=0)
    category: str = "general"


class Reservation(Record):
    order_id: str = Field(alias="orderId")
    item: str
    quantity: int = 1
    price: float
    status: ReservationStatus = ReservationStatus.RESERVED
    reserved_at: datetime = Field(default_factory=utcnow, alias="reservedAt")
    fulfilled_at: Optional[datetime] = Field(default=None, alias="fulfilledAt")


class Shipment(Record):
    order_id: str = Field(alias="orderId")
    address: Optional[str] = None
    item: Optional[str] = None
    tracking_number: str = Field(alias="trackingNumber")
    status: ShipmentStatus = ShipmentStatus.SHIPPED
    shipped_at: datetime = Field(default_factory=utcnow, alias="shippedAt")
    estimated_delivery: datetime = Field(alias="estimatedDelivery")
    delivered_at: Optional[datetime] = Field(default=None, alias="deliveredAt")


class Notification(Record):
    type: NotificationType
    to: Optional[str] = None
    subject: str
    body: str
    timestamp: datetime = Field(default_factory=utcnow)
    order_id: str = Field(alias="orderId")
    tracking_number: Optional[str] = Field(default=None, alias="trackingNumber")
    status: Optional[str] = None


class JournalEntry(BaseModel):
    """One diagnostic record written by the bus for each publish or handler failure."""

    sequence: int = 0
    timestamp: datetime = Field(default_factory=utcnow)
    topic: str
    kind: str  # "published" or "handler_failed"
    payload: Any = None
    handler: Optional[str] = None
    error: Optional[str] = None
