"""
Module: inventory_kernel.models.shipment
Responsibility: ORM persistence for inbound shipments and the physical units
    (shipment items) they carry.
Architecture position: Kernel > Models.

Invariants enforced:
    - storage_id is non-null iff status = received (CHECK).
    - order_id and sold_at are non-null iff status in (sold, shipped) (CHECK).
    - (organization_id, code) is unique: one code per physical unit.
    - Shipment items are never physically deleted (db/immutability.py).

Audit relevance:
    Every lifecycle timestamp (scanned_at, sold_at, delivered_at) lives on
    the item row; delivery-side history is in delivery_history.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import OrgScopedBase, UUIDString
from inventory_kernel.db.types import CodeValue, Name, ShortCode, StatusString
from inventory_kernel.domain.lifecycle import ItemStatus, ShipmentStatus, WarrantyStatus


class Shipment(OrgScopedBase):
    """An inbound delivery from a supplier, identified by its receipt number."""

    __tablename__ = "shipments"

    __table_args__ = (
        UniqueConstraint("organization_id", "receipt_number", name="uq_shipment_receipt"),
    )

    receipt_number: Mapped[ShortCode]
    receipt_date: Mapped[date] = mapped_column(Date, nullable=False)
    supplier_name: Mapped[Name]
    status: Mapped[StatusString] = mapped_column(default=ShipmentStatus.PENDING.value)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)


class ShipmentItem(OrgScopedBase):
    """
    One physical unit and its lifecycle state.

    Guarantees:
        - Status changes go through ShipmentItemService, FulfillmentService or
          ResolutionService, which apply the matching capacity effect in the
          same transaction.
    """

    __tablename__ = "shipment_items"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_item_org_code"),
        Index("idx_item_org_product_status", "organization_id", "product_id", "status"),
        Index("idx_item_shipment", "shipment_id"),
        Index("idx_item_order", "order_id"),
        CheckConstraint(
            "(status = 'received' AND storage_id IS NOT NULL)"
            " OR (status <> 'received' AND storage_id IS NULL)",
            name="ck_item_storage_iff_received",
        ),
        CheckConstraint(
            "(status IN ('sold', 'shipped') AND order_id IS NOT NULL AND sold_at IS NOT NULL)"
            " OR (status NOT IN ('sold', 'shipped') AND order_id IS NULL AND sold_at IS NULL)",
            name="ck_item_order_iff_sold",
        ),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("shipments.id"), nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    code: Mapped[CodeValue]
    status: Mapped[StatusString] = mapped_column(default=ItemStatus.PENDING.value)

    storage_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("storages.id"), nullable=True,
    )
    scanned_at: Mapped[datetime | None] = mapped_column(nullable=True)

    order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=True,
    )
    customer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    sold_at: Mapped[datetime | None] = mapped_column(nullable=True)

    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    warranty_months: Mapped[int] = mapped_column(default=12, nullable=False)
    warranty_status: Mapped[StatusString] = mapped_column(
        default=WarrantyStatus.PENDING.value,
    )
    warranty_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    customer_scan_count: Mapped[int] = mapped_column(default=0, nullable=False)
    first_scanned_by_customer_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_scanned_by_customer_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<ShipmentItem {self.code} {self.status}>"
