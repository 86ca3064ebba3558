"""
ORM-Level Append-Only and Never-Delete Enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Rule                               | Why
------------------|------------------------------------|---------------------------------
DeliveryHistory   | No UPDATE, no DELETE               | Status trail must stay auditable
SupplierReturn    | No UPDATE, no DELETE               | Return record backs a refund
ShipmentItem      | No DELETE                          | Unit history must stay auditable
Code              | No DELETE                          | Codes are never reissued

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners below raise ImmutabilityViolationError, which aborts
the flush; the unit of work then rolls the transaction back.

    session.flush()
         |
         v
    [before_update / before_delete] --> _reject_*() --> ImmutabilityViolationError

Bulk ``update()`` / ``delete()`` statements bypass mapper events; kernel
services never issue them against these tables.

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent, called by create_tables()
"""

from sqlalchemy import event

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _reject_history_update(mapper, connection, target):
    _blocked("DeliveryHistory", target, "UPDATE", "Delivery history is append-only")


def _reject_history_delete(mapper, connection, target):
    _blocked("DeliveryHistory", target, "DELETE", "Delivery history cannot be deleted")


def _reject_supplier_return_update(mapper, connection, target):
    _blocked("SupplierReturn", target, "UPDATE", "Supplier return records are append-only")


def _reject_supplier_return_delete(mapper, connection, target):
    _blocked("SupplierReturn", target, "DELETE", "Supplier return records cannot be deleted")


def _reject_item_delete(mapper, connection, target):
    _blocked("ShipmentItem", target, "DELETE", "Shipment items are never physically deleted")


def _reject_code_delete(mapper, connection, target):
    _blocked("Code", target, "DELETE", "Allocated codes are never deleted or reissued")


def _listeners():
    from inventory_kernel.models.code import Code
    from inventory_kernel.models.delivery import DeliveryHistory, SupplierReturn
    from inventory_kernel.models.shipment import ShipmentItem

    return (
        (DeliveryHistory, "before_update", _reject_history_update),
        (DeliveryHistory, "before_delete", _reject_history_delete),
        (SupplierReturn, "before_update", _reject_supplier_return_update),
        (SupplierReturn, "before_delete", _reject_supplier_return_delete),
        (ShipmentItem, "before_delete", _reject_item_delete),
        (Code, "before_delete", _reject_code_delete),
    )


def register_immutability_listeners() -> None:
    """Register all listeners. Safe to call more than once."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the listeners.

    WARNING: Only for tests that must bypass the rules to verify detection.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
