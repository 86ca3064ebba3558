"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable inputs and results that cross the service and selector
    boundaries.  Services accept and return these, never ORM entities, so
    callers can use results after the unit of work has closed its session.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValueError on negative quantities, prices or capacities at
      construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID

from inventory_kernel.domain.lifecycle import (
    DeliveryStatus,
    ItemStatus,
    ResolutionStatus,
    ResolutionType,
    ShipmentStatus,
    WarrantyStatus,
)

# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ShipmentLine:
    """One product line of an inbound shipment.

    ``codes`` lists pre-stamped pooled codes; when empty, one code per unit
    is allocated at creation time.
    """

    product_id: UUID
    quantity: int
    codes: tuple[str, ...] = ()
    warranty_months: int | None = None

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError(f"quantity must be >= 1, got {self.quantity}")
        if self.codes and len(self.codes) != self.quantity:
            raise ValueError(
                f"{len(self.codes)} codes supplied for quantity {self.quantity}"
            )


@dataclass(frozen=True)
class RequestedLine:
    """Quantity of one product an order asks for."""

    product_id: UUID
    quantity: int
    unit_price: int = 0

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError(f"quantity must be >= 1, got {self.quantity}")
        if self.unit_price < 0:
            raise ValueError(f"unit_price must be >= 0, got {self.unit_price}")


@dataclass(frozen=True)
class PendingOrderLine:
    """Order line received from an external channel, not yet bound to a unit."""

    product_id: UUID
    quantity: int = 1
    price: int = 0


@dataclass(frozen=True)
class ShipperInfo:
    name: str
    phone: str | None = None
    tracking_number: str | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AllocatedCode:
    value: str
    format_version: str
    batch_id: UUID | None
    generated_at: datetime
    status: str

    @classmethod
    def from_model(cls, row) -> AllocatedCode:
        return cls(
            value=row.value,
            format_version=row.format_version,
            batch_id=row.batch_id,
            generated_at=row.generated_at,
            status=row.status,
        )


@dataclass(frozen=True)
class AllocationResult:
    batch_id: UUID
    codes: tuple[AllocatedCode, ...]
    attempts: int

    @property
    def values(self) -> tuple[str, ...]:
        return tuple(c.value for c in self.codes)


@dataclass(frozen=True)
class ClaimResult:
    value: str
    used_at: datetime


@dataclass(frozen=True)
class ShipmentItemInfo:
    item_id: UUID
    code: str
    product_id: UUID
    shipment_id: UUID
    status: ItemStatus
    storage_id: UUID | None
    order_id: UUID | None
    customer_id: UUID | None
    scanned_at: datetime | None
    sold_at: datetime | None
    warranty_months: int
    warranty_status: WarrantyStatus
    warranty_expires_at: datetime | None
    customer_scan_count: int

    @classmethod
    def from_model(cls, item) -> ShipmentItemInfo:
        return cls(
            item_id=item.id,
            code=item.code,
            product_id=item.product_id,
            shipment_id=item.shipment_id,
            status=ItemStatus(item.status),
            storage_id=item.storage_id,
            order_id=item.order_id,
            customer_id=item.customer_id,
            scanned_at=item.scanned_at,
            sold_at=item.sold_at,
            warranty_months=item.warranty_months,
            warranty_status=WarrantyStatus(item.warranty_status),
            warranty_expires_at=item.warranty_expires_at,
            customer_scan_count=item.customer_scan_count,
        )


@dataclass(frozen=True)
class ShipmentRecord:
    shipment_id: UUID
    receipt_number: str
    supplier_name: str
    receipt_date: date
    status: ShipmentStatus
    items: tuple[ShipmentItemInfo, ...] = ()

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(i.code for i in self.items)


@dataclass(frozen=True)
class ScanResult:
    """Outcome of a scan; ``was_already_received`` marks the idempotent no-op."""

    item: ShipmentItemInfo
    was_already_received: bool


@dataclass(frozen=True)
class BulkReceiveResult:
    shipment_id: UUID
    storage_id: UUID
    updated_count: int
    product_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class FulfilledLine:
    """One order line as seen by invoicing; code is None for unbound lines."""

    order_item_id: UUID
    product_id: UUID
    code: str | None
    shipment_item_id: UUID | None
    quantity: int
    price: int
    fulfillment_status: str

    @classmethod
    def from_model(cls, line) -> FulfilledLine:
        return cls(
            order_item_id=line.id,
            product_id=line.product_id,
            code=line.code,
            shipment_item_id=line.shipment_item_id,
            quantity=line.quantity,
            price=line.price,
            fulfillment_status=line.fulfillment_status,
        )


@dataclass(frozen=True)
class FulfillmentResult:
    order_id: UUID
    lines: tuple[FulfilledLine, ...]
    order_fulfillment_status: str

    @property
    def product_ids(self) -> tuple[UUID, ...]:
        return tuple(sorted({line.product_id for line in self.lines}, key=str))


@dataclass(frozen=True)
class OrderInfo:
    order_id: UUID
    order_number: str
    customer_id: UUID | None
    source: str
    total_amount: int
    payment_status: str
    delivery_status: str
    fulfillment_status: str

    @classmethod
    def from_model(cls, order) -> OrderInfo:
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            source=order.source,
            total_amount=order.total_amount,
            payment_status=order.payment_status,
            delivery_status=order.delivery_status,
            fulfillment_status=order.fulfillment_status,
        )


@dataclass(frozen=True)
class DeliveryInfo:
    delivery_id: UUID
    order_id: UUID
    status: DeliveryStatus
    shipper_name: str
    shipper_phone: str | None
    tracking_number: str | None
    scheduled_date: date | None
    delivered_at: datetime | None
    failure_reason: str | None
    failure_category: str | None
    confirmed_by: UUID | None
    superseded_by_id: UUID | None

    @classmethod
    def from_model(cls, delivery) -> DeliveryInfo:
        return cls(
            delivery_id=delivery.id,
            order_id=delivery.order_id,
            status=DeliveryStatus(delivery.status),
            shipper_name=delivery.shipper_name,
            shipper_phone=delivery.shipper_phone,
            tracking_number=delivery.tracking_number,
            scheduled_date=delivery.scheduled_date,
            delivered_at=delivery.delivered_at,
            failure_reason=delivery.failure_reason,
            failure_category=delivery.failure_category,
            confirmed_by=delivery.confirmed_by,
            superseded_by_id=delivery.superseded_by_id,
        )


@dataclass(frozen=True)
class ResolutionInfo:
    resolution_id: UUID
    delivery_id: UUID
    resolution_type: ResolutionType | None
    status: ResolutionStatus
    target_storage_id: UUID | None
    supplier_return_reason: str | None
    scheduled_date: date | None
    new_delivery_id: UUID | None
    completed_at: datetime | None
    processed_by: UUID | None

    @classmethod
    def from_model(cls, resolution) -> ResolutionInfo:
        return cls(
            resolution_id=resolution.id,
            delivery_id=resolution.delivery_id,
            resolution_type=(
                ResolutionType(resolution.resolution_type)
                if resolution.resolution_type is not None else None
            ),
            status=ResolutionStatus(resolution.status),
            target_storage_id=resolution.target_storage_id,
            supplier_return_reason=resolution.supplier_return_reason,
            scheduled_date=resolution.scheduled_date,
            new_delivery_id=resolution.new_delivery_id,
            completed_at=resolution.completed_at,
            processed_by=resolution.processed_by,
        )


@dataclass(frozen=True)
class DeliveryFailure:
    delivery: DeliveryInfo
    resolution: ResolutionInfo


@dataclass(frozen=True)
class DeliveryConfirmation:
    delivery: DeliveryInfo
    activated_item_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class ResolutionOutcome:
    resolution: ResolutionInfo
    order_id: UUID
    affected_item_ids: tuple[UUID, ...] = ()
    product_ids: tuple[UUID, ...] = ()
    new_delivery: DeliveryInfo | None = None


@dataclass(frozen=True)
class StorageInfo:
    storage_id: UUID
    name: str
    location: str | None
    capacity: int
    used_capacity: int
    priority: int

    @classmethod
    def from_model(cls, storage) -> StorageInfo:
        return cls(
            storage_id=storage.id,
            name=storage.name,
            location=storage.location,
            capacity=storage.capacity,
            used_capacity=storage.used_capacity,
            priority=storage.priority,
        )

    @property
    def available(self) -> int:
        return self.capacity - self.used_capacity


# ---------------------------------------------------------------------------
# Read-side views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScanProgress:
    shipment_id: UUID
    total_items: int
    scanned_items: int
    pending_items: int


@dataclass(frozen=True)
class StorageMetrics:
    total_storages: int
    total_capacity: int
    total_used_capacity: int
    utilization_rate: int


@dataclass(frozen=True)
class OccupancyRow:
    """Counter versus units actually recorded as received at a storage."""

    storage_id: UUID
    name: str
    used_capacity: int
    received_items: int

    @property
    def is_consistent(self) -> bool:
        return self.used_capacity == self.received_items


@dataclass(frozen=True)
class PoolStats:
    available: int
    used: int
    total: int


@dataclass(frozen=True)
class PoolBatch:
    batch_id: UUID
    generated_at: datetime
    count: int
    available_count: int


@dataclass(frozen=True)
class HistoryEntry:
    delivery_id: UUID
    from_status: str | None
    to_status: str
    changed_by: UUID
    notes: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, row) -> HistoryEntry:
        return cls(
            delivery_id=row.delivery_id,
            from_status=row.from_status,
            to_status=row.to_status,
            changed_by=row.changed_by,
            notes=row.notes,
            created_at=row.created_at,
        )


@dataclass(frozen=True)
class DeliveryStats:
    by_status: dict[str, int] = field(default_factory=dict)
    resolutions_by_type: dict[str, int] = field(default_factory=dict)
    resolutions_by_status: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.by_status.values())
