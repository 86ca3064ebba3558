"""
inventory_services -- Package init and public API.

Responsibility:
    Transaction boundaries and the public facade over inventory_kernel.
    This is the only layer that commits, reads configuration and talks to
    downstream collaborators.

Architecture position:
    Services -- orchestration over the kernel.

        inventory_services/ -> inventory_kernel/  (allowed)
        inventory_services/ -> inventory_config/  (allowed)
        inventory_kernel/   -> inventory_services/ (forbidden)
"""

from inventory_services.notifications import (
    InventorySyncPort,
    Notification,
    NotificationDispatcher,
    NotificationKind,
    OrderChannelPort,
    SearchIndexPort,
)
from inventory_services.unit_of_work import KernelServices, UnitOfWork
from inventory_services.warehouse_operations import WarehouseOperations

__all__ = [
    "InventorySyncPort",
    "KernelServices",
    "Notification",
    "NotificationDispatcher",
    "NotificationKind",
    "OrderChannelPort",
    "SearchIndexPort",
    "UnitOfWork",
    "WarehouseOperations",
]
