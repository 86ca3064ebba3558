"""
Lifecycle -- status enums and legal transition tables.

Responsibility:
    Single source of truth for every status value the kernel stores and for
    which status changes are legal.  Shipment item transitions also declare
    their capacity effect, so a service cannot change an item's physical
    location without the Capacity Ledger seeing it.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Item transitions follow ITEM_TRANSITIONS; anything else raises
      InvalidTransitionError.
    - Delivery terminal states (delivered, failed, cancelled) have no
      outgoing transitions.
    - Resolutions move pending -> in_progress -> completed (pending ->
      completed directly is allowed); completed is terminal.
    - storage_id is set iff an item is received; order_id/sold_at are set
      iff it is sold or shipped (check_item_invariants).
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from inventory_kernel.exceptions import InvalidTransitionError


class ItemStatus(str, Enum):
    """Lifecycle state of one physical unit."""

    PENDING = "pending"
    RECEIVED = "received"
    SOLD = "sold"
    SHIPPED = "shipped"
    RETURNED = "returned"


class ShipmentStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"


class CodeStatus(str, Enum):
    AVAILABLE = "available"
    USED = "used"


class AllocationMode(str, Enum):
    IMMEDIATE = "immediate"
    POOLED = "pooled"


class WarrantyStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    VOID = "void"


class OrderSource(str, Enum):
    IN_STORE = "in_store"
    SHOPIFY = "shopify"
    MANUAL = "manual"


class OrderFulfillmentStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    FULFILLED = "fulfilled"


class OrderLineStatus(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REVERSED = "reversed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"


class DeliveryStatus(str, Enum):
    """Status of one delivery attempt."""

    WAITING = "waiting_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OrderDeliveryStatus(str, Enum):
    """Delivery status mirrored on the order (``none`` before any attempt)."""

    NONE = "none"
    WAITING = "waiting_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FailureCategory(str, Enum):
    CUSTOMER_UNAVAILABLE = "customer_unavailable"
    WRONG_ADDRESS = "wrong_address"
    DAMAGED_PACKAGE = "damaged_package"
    REFUSED_DELIVERY = "refused_delivery"
    OTHER = "other"


class ResolutionType(str, Enum):
    RE_IMPORT = "re_import"
    RETURN_TO_SUPPLIER = "return_to_supplier"
    RETRY_DELIVERY = "retry_delivery"


class ResolutionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class CapacityEffect(str, Enum):
    """What a transition does to the Capacity Ledger."""

    NONE = "none"
    ADMIT = "admit"
    RELEASE = "release"


@dataclass(frozen=True)
class ItemTransition:
    source: ItemStatus
    target: ItemStatus
    trigger: str
    capacity_effect: CapacityEffect


_ITEM_TRANSITION_LIST = (
    ItemTransition(ItemStatus.PENDING, ItemStatus.RECEIVED, "scan", CapacityEffect.ADMIT),
    ItemTransition(ItemStatus.RECEIVED, ItemStatus.SOLD, "fulfill", CapacityEffect.RELEASE),
    ItemTransition(ItemStatus.SOLD, ItemStatus.SHIPPED, "mark_shipped", CapacityEffect.NONE),
    ItemTransition(ItemStatus.SHIPPED, ItemStatus.RETURNED, "mark_returned", CapacityEffect.NONE),
    ItemTransition(ItemStatus.SOLD, ItemStatus.RECEIVED, "re_import", CapacityEffect.ADMIT),
    ItemTransition(ItemStatus.SHIPPED, ItemStatus.RECEIVED, "re_import", CapacityEffect.ADMIT),
    ItemTransition(ItemStatus.SOLD, ItemStatus.PENDING, "return_to_supplier", CapacityEffect.NONE),
    ItemTransition(ItemStatus.SHIPPED, ItemStatus.PENDING, "return_to_supplier", CapacityEffect.NONE),
    ItemTransition(ItemStatus.RECEIVED, ItemStatus.PENDING, "return_to_supplier", CapacityEffect.RELEASE),
)

ITEM_TRANSITIONS: dict[tuple[ItemStatus, ItemStatus], ItemTransition] = {
    (t.source, t.target): t for t in _ITEM_TRANSITION_LIST
}

# Item states a failed delivery's units can be in when a resolution runs
RESOLVABLE_ITEM_STATES: frozenset[ItemStatus] = frozenset({
    ItemStatus.SOLD, ItemStatus.SHIPPED,
})

# Return-to-supplier also takes units already back on a shelf
RETURNABLE_ITEM_STATES: frozenset[ItemStatus] = RESOLVABLE_ITEM_STATES | {ItemStatus.RECEIVED}

DELIVERY_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.WAITING: frozenset({
        DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.CANCELLED,
    }),
    DeliveryStatus.DELIVERED: frozenset(),
    DeliveryStatus.FAILED: frozenset(),
    DeliveryStatus.CANCELLED: frozenset(),
}

RESOLUTION_TRANSITIONS: dict[ResolutionStatus, frozenset[ResolutionStatus]] = {
    ResolutionStatus.PENDING: frozenset({
        ResolutionStatus.IN_PROGRESS, ResolutionStatus.COMPLETED,
    }),
    ResolutionStatus.IN_PROGRESS: frozenset({ResolutionStatus.COMPLETED}),
    ResolutionStatus.COMPLETED: frozenset(),
}


def item_transition(
    current: str, target: ItemStatus, *, item_code: str,
) -> ItemTransition:
    """Look up the transition from ``current`` to ``target`` or raise."""
    transition = ITEM_TRANSITIONS.get((ItemStatus(current), target))
    if transition is None:
        raise InvalidTransitionError(
            "ShipmentItem", item_code, str(ItemStatus(current).value), target.value,
        )
    return transition


def ensure_delivery_transition(
    current: str, target: DeliveryStatus, *, delivery_id: UUID,
) -> None:
    if target not in DELIVERY_TRANSITIONS[DeliveryStatus(current)]:
        raise InvalidTransitionError(
            "Delivery", str(delivery_id), DeliveryStatus(current).value, target.value,
        )


def ensure_resolution_transition(
    current: str, target: ResolutionStatus, *, resolution_id: UUID,
) -> None:
    if target not in RESOLUTION_TRANSITIONS[ResolutionStatus(current)]:
        raise InvalidTransitionError(
            "DeliveryResolution", str(resolution_id),
            ResolutionStatus(current).value, target.value,
        )


def check_item_invariants(
    status: str,
    storage_id: UUID | None,
    order_id: UUID | None,
    sold_at: datetime | None,
) -> list[str]:
    """Return the list of violated item invariants (empty when consistent)."""
    violations: list[str] = []
    is_received = ItemStatus(status) is ItemStatus.RECEIVED
    is_sold = ItemStatus(status) in (ItemStatus.SOLD, ItemStatus.SHIPPED)
    if (storage_id is not None) != is_received:
        violations.append("storage_id must be set exactly when status is received")
    if (order_id is not None) != is_sold:
        violations.append("order_id must be set exactly when status is sold or shipped")
    if (sold_at is not None) != is_sold:
        violations.append("sold_at must be set exactly when status is sold or shipped")
    return violations
