"""ORM models. Importing this package registers every table on Base.metadata."""

from inventory_kernel.models.code import Code
from inventory_kernel.models.delivery import (
    Delivery,
    DeliveryHistory,
    DeliveryResolution,
    SupplierReturn,
)
from inventory_kernel.models.order import Order, OrderItem
from inventory_kernel.models.shipment import Shipment, ShipmentItem
from inventory_kernel.models.storage import Storage

__all__ = [
    "Code",
    "Delivery",
    "DeliveryHistory",
    "DeliveryResolution",
    "Order",
    "OrderItem",
    "Shipment",
    "ShipmentItem",
    "Storage",
    "SupplierReturn",
]
