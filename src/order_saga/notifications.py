import logging
from typing import Any, List, Mapping

from .models import Notification, NotificationType, OrderStatus
from .protocols import EventBus, Subscription

NOTIFIED_STATUSES = (OrderStatus.CANCELLED.value, OrderStatus.DELIVERED.value)


class EmailNotifier:
    """Turns order events into customer notification records. Pure consumer."""

    def __init__(self, bus: EventBus):
        self.bus = bus
        self._sent: List[Notification] = []
        self._subscriptions: List[Subscription] = []

    def bind(self) -> "EmailNotifier":
        self._subscriptions = [
            self.bus.subscribe("order:created", self.send_confirmation),
            self.bus.subscribe("order:shipped", self.send_shipping_notification),
            self.bus.subscribe("order:status_updated", self.send_status_update),
        ]
        return self

    def unbind(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

    def _record(self, notification: Notification) -> Notification:
        self._sent.append(notification)
        logging.info(f"{notification.type} email to {notification.to}: {notification.subject}")
        return notification

    def send_confirmation(self, order_data: Mapping[str, Any]) -> Notification:
        return self._record(
            Notification(
                type=NotificationType.CONFIRMATION,
                to=order_data.get("email"),
                subject=f"Order Confirmation - {order_data['orderId']}",
                body=f"Thank you for your order of {order_data.get('item')}. We'll process it shortly.",
                order_id=order_data["orderId"],
            )
        )

    def send_shipping_notification(self, order_data: Mapping[str, Any]) -> Notification:
        return self._record(
            Notification(
                type=NotificationType.SHIPPING,
                to=order_data.get("email"),
                subject=f"Your order {order_data['orderId']} has shipped!",
                body=(
                    f"Your {order_data.get('item')} is on its way to {order_data.get('address')}. "
                    f"Tracking: {order_data.get('trackingNumber')}"
                ),
                order_id=order_data["orderId"],
                tracking_number=order_data.get("trackingNumber"),
            )
        )

    def send_status_update(self, data: Mapping[str, Any]) -> Notification | None:
        status = data.get("status")
        if status not in NOTIFIED_STATUSES:
            return None
        return self._record(
            Notification(
                type=NotificationType.STATUS_UPDATE,
                to=(data.get("order") or {}).get("email"),
                subject=f"Order {data['orderId']} {status}",
                body=f"Your order status has been updated to: {status}",
                order_id=data["orderId"],
                status=status,
            )
        )

    def get_email_history(self) -> List[Notification]:
        return list(self._sent)

    def get_emails_by_type(self, type: str) -> List[Notification]:
        return [n for n in self._sent if n.type == type]

    def get_emails_for_order(self, order_id: str) -> List[Notification]:
        return [n for n in self._sent if n.order_id == order_id]
