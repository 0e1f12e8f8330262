import logging
from collections import Counter
from typing import Any, Dict, Mapping, Optional

from .models import ShipmentStatus
from .system import order_system

DEMO_CATALOG = {
    "MacBook Pro": {"stock": 10, "price": 2399.99, "category": "laptops"},
    "iPhone 15": {"stock": 25, "price": 999.99, "category": "phones"},
    "iPad Air": {"stock": 15, "price": 599.99, "category": "tablets"},
    "AirPods Pro": {"stock": 50, "price": 249.99, "category": "accessories"},
    "Apple Watch": {"stock": 30, "price": 399.99, "category": "wearables"},
}

DEMO_ORDERS = [
    {"orderId": "ORD123", "email": "user@example.com", "item": "MacBook Pro", "address": "123 Apple St, Cupertino, CA"},
    {"orderId": "ORD124", "email": "jane@example.com", "item": "iPhone 15", "address": "456 Oak St, San Francisco, CA"},
] + [
    {"orderId": f"ORD12{4 + i}", "email": f"customer{i}@example.com", "item": "iPad Air", "address": f"{100 + i} Main St, Tech City, CA"}
    for i in range(1, 4)
]


async def run_demo(config: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Runs a few orders through the full saga and summarizes the final state."""
    async with order_system(config, catalog=DEMO_CATALOG) as system:
        system.bus.subscribe(
            "inventory:low_stock",
            lambda data: logging.warning(
                f"Low stock warning: {data['item']} ({data['currentStock']} remaining)"
            ),
        )
        for order in DEMO_ORDERS:
            await system.orders.create_order(order)
        await system.settle()

        return {
            "orders": {o.order_id: o.status for o in system.orders.get_all_orders()},
            "inventory": {i.name: i.stock for i in system.inventory.get_inventory()},
            "emails": dict(Counter(n.type for n in system.email.get_email_history())),
            "shipments": dict(Counter(ShipmentStatus(s.status).value for s in system.shipping.get_all_shipments())),
            "topics": system.bus.topics(),
            "failures": len(system.bus.failures),
        }
