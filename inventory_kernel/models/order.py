"""
Module: inventory_kernel.models.order
Responsibility: ORM persistence for orders and their line items as far as
    the warehouse needs them (fulfillment linkage and delivery status).
Architecture position: Kernel > Models.

Invariants enforced:
    - (organization_id, order_number) is unique.
    - An order line's shipment_item_id and code are nullable: lines from
      external channels exist before any unit is bound to them.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import OrgScopedBase, UUIDString
from inventory_kernel.db.types import ShortCode, StatusString
from inventory_kernel.domain.lifecycle import (
    OrderDeliveryStatus,
    OrderFulfillmentStatus,
    OrderLineStatus,
    OrderSource,
    PaymentStatus,
)


class Order(OrgScopedBase):
    """A customer order. Owned by the order collaborator, annotated here."""

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("organization_id", "order_number", name="uq_order_number"),
    )

    order_number: Mapped[ShortCode]
    customer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    source: Mapped[StatusString] = mapped_column(default=OrderSource.MANUAL.value)
    total_amount: Mapped[int] = mapped_column(default=0, nullable=False)
    payment_status: Mapped[StatusString] = mapped_column(default=PaymentStatus.PENDING.value)
    delivery_status: Mapped[StatusString] = mapped_column(
        default=OrderDeliveryStatus.NONE.value,
    )
    fulfillment_status: Mapped[StatusString] = mapped_column(
        default=OrderFulfillmentStatus.PENDING.value,
    )


class OrderItem(OrgScopedBase):
    """One line of an order, bound to at most one shipment item."""

    __tablename__ = "order_items"

    __table_args__ = (
        Index("idx_order_item_order", "order_id"),
        Index("idx_order_item_shipment_item", "shipment_item_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    quantity: Mapped[int] = mapped_column(default=1, nullable=False)
    price: Mapped[int] = mapped_column(default=0, nullable=False)
    shipment_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("shipment_items.id"), nullable=True,
    )
    code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    fulfillment_status: Mapped[StatusString] = mapped_column(
        default=OrderLineStatus.PENDING.value,
    )
    scanned_at: Mapped[datetime | None] = mapped_column(nullable=True)
