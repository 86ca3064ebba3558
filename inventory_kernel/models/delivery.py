"""
Module: inventory_kernel.models.delivery
Responsibility: ORM persistence for delivery attempts, their append-only
    status history, the compensating resolutions of failed attempts and the
    supplier return records those resolutions emit.
Architecture position: Kernel > Models.

Invariants enforced:
    - At most one waiting_for_delivery delivery per order (partial unique
      index uq_delivery_waiting_per_order).
    - At most one non-completed resolution per delivery (partial unique
      index uq_resolution_open_per_delivery).
    - DeliveryHistory and SupplierReturn rows are append-only
      (db/immutability.py).

Audit relevance:
    delivery_history is the full trail of every delivery status change with
    actor and notes.  Resolutions record who processed them and when.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, OrgScopedBase, UUIDString
from inventory_kernel.db.types import Name, StatusString
from inventory_kernel.domain.lifecycle import DeliveryStatus, ResolutionStatus

_WAITING = f"status = '{DeliveryStatus.WAITING.value}'"
_OPEN = f"status <> '{ResolutionStatus.COMPLETED.value}'"


class Delivery(OrgScopedBase):
    """
    One attempt to physically deliver an order.

    Guarantees:
        - Status leaves waiting_for_delivery at most once.
        - superseded_by_id points at the retry delivery created for a failed
          attempt.
    """

    __tablename__ = "deliveries"

    __table_args__ = (
        Index(
            "uq_delivery_waiting_per_order",
            "order_id",
            unique=True,
            postgresql_where=text(_WAITING),
            sqlite_where=text(_WAITING),
        ),
        Index("idx_delivery_org_status", "organization_id", "status"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False,
    )
    status: Mapped[StatusString] = mapped_column(default=DeliveryStatus.WAITING.value)
    shipper_name: Mapped[Name]
    shipper_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    failure_category: Mapped[str | None] = mapped_column(String(30), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    confirmed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    superseded_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)


class DeliveryHistory(Base):
    """Append-only record of one delivery status change."""

    __tablename__ = "delivery_history"

    __table_args__ = (
        Index("idx_delivery_history_delivery", "delivery_id", "created_at"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    delivery_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("deliveries.id"), nullable=False,
    )
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[StatusString]
    changed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)


class DeliveryResolution(OrgScopedBase):
    """
    Compensating action for a failed delivery.

    resolution_type stays NULL until a type is chosen (start) or a processor
    runs; completed resolutions are never processed again.
    """

    __tablename__ = "delivery_resolutions"

    __table_args__ = (
        Index(
            "uq_resolution_open_per_delivery",
            "delivery_id",
            unique=True,
            postgresql_where=text(_OPEN),
            sqlite_where=text(_OPEN),
        ),
    )

    delivery_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("deliveries.id"), nullable=False,
    )
    resolution_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    status: Mapped[StatusString] = mapped_column(default=ResolutionStatus.PENDING.value)
    target_storage_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    supplier_return_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    new_delivery_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    processed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)


class SupplierReturn(Base):
    """Append-only record of one unit sent back to its supplier."""

    __tablename__ = "supplier_returns"

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    resolution_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("delivery_resolutions.id"), nullable=False,
    )
    order_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    shipment_item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("shipment_items.id"), nullable=False,
    )
    reason: Mapped[str] = mapped_column(String(4000), nullable=False)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
