"""
DeliveryService -- delivery lifecycle of an order.

Responsibility:
    Opens delivery attempts, confirms, fails and cancels them, and writes
    every status change to the append-only DeliveryHistory.  A failed
    attempt spawns exactly one pending DeliveryResolution in the same
    transaction.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - Only waiting_for_delivery may move (to delivered, failed or
      cancelled); the other states are terminal.
    - At most one waiting delivery per order (checked under the order row
      lock and backed by a partial unique index).
    - Failure and resolution creation are one atomic change.
    - Delivery confirmation activates warranties but never touches
      capacity: the units left the building at sale.

Failure modes:
    - DeliveryNotFoundError, OrderNotFoundError.
    - DeliveryAlreadyActiveError when the order already has a waiting
      delivery.
    - InvalidTransitionError from any terminal state.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import (
    DeliveryConfirmation,
    DeliveryFailure,
    DeliveryInfo,
    ResolutionInfo,
    ShipperInfo,
)
from inventory_kernel.domain.lifecycle import (
    DeliveryStatus,
    FailureCategory,
    ItemStatus,
    OrderDeliveryStatus,
    ResolutionStatus,
    WarrantyStatus,
    ensure_delivery_transition,
)
from inventory_kernel.domain.warranty import warranty_expiry
from inventory_kernel.exceptions import (
    DeliveryAlreadyActiveError,
    DeliveryNotFoundError,
    InvalidFailureCategoryError,
    MissingFieldError,
    OrderNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.delivery import Delivery, DeliveryHistory, DeliveryResolution
from inventory_kernel.models.order import Order
from inventory_kernel.models.shipment import ShipmentItem
from inventory_kernel.services.base import BaseService

logger = get_logger("services.delivery")


def parse_failure_category(value: str | FailureCategory) -> FailureCategory:
    """Validate a failure category before any transaction opens."""
    try:
        return FailureCategory(value)
    except ValueError:
        raise InvalidFailureCategoryError(
            str(value), tuple(c.value for c in FailureCategory),
        ) from None


class DeliveryService(BaseService[Delivery]):
    """
    Delivery lifecycle.

    Guarantees:
        - Every status change appends exactly one DeliveryHistory row
          carrying the acting user and notes.
        - The order's delivery_status mirrors its latest delivery.
    """

    def lock_delivery(self, ctx: OrgContext, delivery_id: UUID) -> Delivery:
        delivery = self.session.execute(
            select(Delivery)
            .where(
                Delivery.id == delivery_id,
                Delivery.organization_id == ctx.organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if delivery is None:
            raise DeliveryNotFoundError(str(delivery_id))
        return delivery

    def _lock_order(self, ctx: OrgContext, order_id: UUID) -> Order:
        order = self.session.execute(
            select(Order)
            .where(Order.id == order_id, Order.organization_id == ctx.organization_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def record_history(
        self,
        ctx: OrgContext,
        delivery: Delivery,
        from_status: str | None,
        to_status: str,
        notes: str | None = None,
    ) -> DeliveryHistory:
        entry = DeliveryHistory(
            organization_id=ctx.organization_id,
            delivery_id=delivery.id,
            from_status=from_status,
            to_status=to_status,
            changed_by=ctx.actor_id,
            notes=notes,
            created_at=self.clock.now(),
        )
        self.session.add(entry)
        return entry

    def open_delivery(
        self,
        ctx: OrgContext,
        order_id: UUID,
        shipper: ShipperInfo,
        scheduled_date: date | None = None,
        notes: str | None = None,
    ) -> Delivery:
        """Create a waiting delivery for an order with no other waiting one."""
        if not shipper.name or not shipper.name.strip():
            raise MissingFieldError("shipper.name")
        order = self._lock_order(ctx, order_id)
        active = self.session.scalar(
            select(Delivery.id).where(
                Delivery.order_id == order.id,
                Delivery.status == DeliveryStatus.WAITING.value,
            )
        )
        if active is not None:
            raise DeliveryAlreadyActiveError(str(order.id), str(active))

        delivery = Delivery(
            organization_id=ctx.organization_id,
            order_id=order.id,
            status=DeliveryStatus.WAITING.value,
            shipper_name=shipper.name.strip(),
            shipper_phone=shipper.phone,
            tracking_number=shipper.tracking_number,
            scheduled_date=scheduled_date,
            notes=notes,
            created_by_id=ctx.actor_id,
        )
        self.session.add(delivery)
        self.session.flush()
        self.record_history(ctx, delivery, None, DeliveryStatus.WAITING.value, notes)
        order.delivery_status = OrderDeliveryStatus.WAITING.value
        order.updated_by_id = ctx.actor_id
        self.session.flush()
        return delivery

    def create_delivery(
        self,
        ctx: OrgContext,
        order_id: UUID,
        shipper: ShipperInfo,
        scheduled_date: date | None = None,
        notes: str | None = None,
    ) -> DeliveryInfo:
        delivery = self.open_delivery(ctx, order_id, shipper, scheduled_date, notes)
        logger.info(
            "delivery_created",
            extra={
                "delivery_id": str(delivery.id),
                "order_id": str(order_id),
                "shipper": delivery.shipper_name,
            },
        )
        return DeliveryInfo.from_model(delivery)

    def _move(
        self,
        ctx: OrgContext,
        delivery: Delivery,
        target: DeliveryStatus,
        notes: str | None,
    ) -> str:
        ensure_delivery_transition(delivery.status, target, delivery_id=delivery.id)
        previous = delivery.status
        delivery.status = target.value
        delivery.updated_by_id = ctx.actor_id
        if notes is not None:
            delivery.notes = notes
        self.record_history(ctx, delivery, previous, target.value, notes)
        order = self._lock_order(ctx, delivery.order_id)
        order.delivery_status = OrderDeliveryStatus(target.value).value
        order.updated_by_id = ctx.actor_id
        return previous

    def mark_delivered(
        self, ctx: OrgContext, delivery_id: UUID, notes: str | None = None,
    ) -> DeliveryConfirmation:
        """Confirm delivery and start the warranty of every unit on the order."""
        delivery = self.lock_delivery(ctx, delivery_id)
        self._move(ctx, delivery, DeliveryStatus.DELIVERED, notes)
        now = self.clock.now()
        delivery.delivered_at = now
        delivery.confirmed_by = ctx.actor_id

        units = list(self.session.scalars(
            select(ShipmentItem)
            .where(
                ShipmentItem.organization_id == ctx.organization_id,
                ShipmentItem.order_id == delivery.order_id,
                ShipmentItem.status.in_(
                    [ItemStatus.SOLD.value, ItemStatus.SHIPPED.value]
                ),
            )
            .order_by(ShipmentItem.id)
            .with_for_update()
        ))
        for unit in units:
            unit.delivered_at = now
            unit.warranty_status = WarrantyStatus.ACTIVE.value
            unit.warranty_expires_at = warranty_expiry(now, unit.warranty_months)
            unit.updated_by_id = ctx.actor_id
        self.session.flush()

        logger.info(
            "delivery_delivered",
            extra={"delivery_id": str(delivery.id), "warranties_activated": len(units)},
        )
        return DeliveryConfirmation(
            delivery=DeliveryInfo.from_model(delivery),
            activated_item_ids=tuple(u.id for u in units),
        )

    def mark_failed(
        self,
        ctx: OrgContext,
        delivery_id: UUID,
        reason: str,
        category: FailureCategory,
        notes: str | None = None,
    ) -> DeliveryFailure:
        """Fail the attempt and open its pending resolution."""
        if not reason or not reason.strip():
            raise MissingFieldError("reason")
        delivery = self.lock_delivery(ctx, delivery_id)
        self._move(ctx, delivery, DeliveryStatus.FAILED, notes)
        delivery.failure_reason = reason.strip()
        delivery.failure_category = FailureCategory(category).value

        resolution = DeliveryResolution(
            organization_id=ctx.organization_id,
            delivery_id=delivery.id,
            status=ResolutionStatus.PENDING.value,
            created_by_id=ctx.actor_id,
        )
        self.session.add(resolution)
        self.session.flush()

        logger.info(
            "delivery_failed",
            extra={
                "delivery_id": str(delivery.id),
                "category": delivery.failure_category,
                "resolution_id": str(resolution.id),
            },
        )
        return DeliveryFailure(
            delivery=DeliveryInfo.from_model(delivery),
            resolution=ResolutionInfo.from_model(resolution),
        )

    def cancel(
        self, ctx: OrgContext, delivery_id: UUID, reason: str | None = None,
    ) -> DeliveryInfo:
        delivery = self.lock_delivery(ctx, delivery_id)
        self._move(ctx, delivery, DeliveryStatus.CANCELLED, reason)
        self.session.flush()
        logger.info("delivery_cancelled", extra={"delivery_id": str(delivery.id)})
        return DeliveryInfo.from_model(delivery)
