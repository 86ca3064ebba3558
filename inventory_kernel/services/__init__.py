"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.capacity_ledger import CapacityLedger
from inventory_kernel.services.code_allocator import CodeAllocator
from inventory_kernel.services.delivery_service import DeliveryService, parse_failure_category
from inventory_kernel.services.fulfillment_service import FulfillmentService
from inventory_kernel.services.resolution_service import ResolutionService
from inventory_kernel.services.shipment_item_service import ShipmentItemService

__all__ = [
    "CapacityLedger",
    "CodeAllocator",
    "DeliveryService",
    "FulfillmentService",
    "ResolutionService",
    "ShipmentItemService",
    "parse_failure_category",
]
