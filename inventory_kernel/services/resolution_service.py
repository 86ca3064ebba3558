"""
ResolutionService -- compensating actions for failed deliveries.

Responsibility:
    Applies exactly one of re-import, return-to-supplier or retry to the
    resolution opened by a failed delivery, moving the order's units,
    capacity, order lines and delivery records together.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  Composes
    ShipmentItemService (unit moves and capacity) and DeliveryService
    (history and new attempts).

Invariants enforced:
    - A resolution is processed at most once: the row is locked FOR UPDATE
      and a completed resolution raises ResolutionAlreadyCompletedError.
    - Re-import admits all units at the target storage in one admission.
    - A retry never reopens the failed delivery; it creates a new waiting
      delivery and links it through superseded_by_id.
    - Each completed resolution leaves one DeliveryHistory entry.
    - Locks go resolution, delivery, order, then the order's lines and
      units.  An order with no fulfilled line left is pending again.

Failure modes:
    - ResolutionNotFoundError, StorageNotFoundError.
    - ResolutionAlreadyCompletedError.
    - InvalidTransitionError when a started resolution is processed as a
      different type.
    - CapacityExceededError on re-import; nothing changes.
"""

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import (
    DeliveryInfo,
    ResolutionInfo,
    ResolutionOutcome,
    ShipperInfo,
)
from inventory_kernel.domain.lifecycle import (
    RESOLVABLE_ITEM_STATES,
    RETURNABLE_ITEM_STATES,
    ItemStatus,
    OrderFulfillmentStatus,
    OrderLineStatus,
    PaymentStatus,
    ResolutionStatus,
    ResolutionType,
    ensure_resolution_transition,
)
from inventory_kernel.exceptions import (
    InvalidTransitionError,
    MissingFieldError,
    ResolutionAlreadyCompletedError,
    ResolutionNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.delivery import Delivery, DeliveryResolution, SupplierReturn
from inventory_kernel.models.order import Order, OrderItem
from inventory_kernel.models.shipment import ShipmentItem
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.delivery_service import DeliveryService
from inventory_kernel.services.shipment_item_service import ShipmentItemService, _distinct

logger = get_logger("services.resolutions")

RESOLVED_HISTORY_STATUS = "resolved"


class ResolutionService(BaseService[DeliveryResolution]):
    """
    Resolution workflow.

    Contract:
        Processors accept a resolution that is pending, or in_progress with
        the same type.  They return a ResolutionOutcome naming the order,
        the units moved and their products, for post-commit notifications.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        items: ShipmentItemService,
        deliveries: DeliveryService,
    ):
        super().__init__(session, clock)
        self.items = items
        self.deliveries = deliveries

    def lock_resolution(self, ctx: OrgContext, resolution_id: UUID) -> DeliveryResolution:
        resolution = self.session.execute(
            select(DeliveryResolution)
            .where(
                DeliveryResolution.id == resolution_id,
                DeliveryResolution.organization_id == ctx.organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if resolution is None:
            raise ResolutionNotFoundError(str(resolution_id))
        return resolution

    def _claim(
        self, ctx: OrgContext, resolution_id: UUID, resolution_type: ResolutionType,
    ) -> tuple[DeliveryResolution, Delivery]:
        """Lock the resolution and check it may be processed as ``resolution_type``."""
        resolution = self.lock_resolution(ctx, resolution_id)
        if resolution.status == ResolutionStatus.COMPLETED:
            raise ResolutionAlreadyCompletedError(
                str(resolution.id), resolution.resolution_type,
            )
        if (
            resolution.resolution_type is not None
            and resolution.resolution_type != resolution_type
        ):
            raise InvalidTransitionError(
                "DeliveryResolution",
                str(resolution.id),
                resolution.resolution_type,
                resolution_type.value,
            )
        ensure_resolution_transition(
            resolution.status, ResolutionStatus.COMPLETED, resolution_id=resolution.id,
        )
        delivery = self.deliveries.lock_delivery(ctx, resolution.delivery_id)
        return resolution, delivery

    def start(
        self, ctx: OrgContext, resolution_id: UUID, resolution_type: ResolutionType,
    ) -> ResolutionInfo:
        """pending -> in_progress with the chosen compensating action."""
        resolution = self.lock_resolution(ctx, resolution_id)
        if resolution.status == ResolutionStatus.COMPLETED:
            raise ResolutionAlreadyCompletedError(
                str(resolution.id), resolution.resolution_type,
            )
        ensure_resolution_transition(
            resolution.status, ResolutionStatus.IN_PROGRESS, resolution_id=resolution.id,
        )
        resolution.status = ResolutionStatus.IN_PROGRESS.value
        resolution.resolution_type = resolution_type.value
        resolution.updated_by_id = ctx.actor_id
        self.session.flush()
        logger.info(
            "resolution_started",
            extra={"resolution_id": str(resolution.id), "resolution_type": resolution_type.value},
        )
        return ResolutionInfo.from_model(resolution)

    def _lock_order(self, ctx: OrgContext, order_id: UUID) -> Order:
        return self.session.execute(
            select(Order)
            .where(Order.id == order_id, Order.organization_id == ctx.organization_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

    def _order_units(
        self, ctx: OrgContext, order_id: UUID, states: frozenset[ItemStatus],
    ) -> tuple[list[OrderItem], list[ShipmentItem]]:
        """Fulfilled lines of an order whose units are in one of ``states``."""
        lines = list(self.session.scalars(
            select(OrderItem)
            .where(
                OrderItem.order_id == order_id,
                OrderItem.fulfillment_status == OrderLineStatus.FULFILLED.value,
                OrderItem.shipment_item_id.is_not(None),
            )
            .order_by(OrderItem.id)
            .with_for_update()
        ))
        units = self.items.lock_items_by_id(ctx, (line.shipment_item_id for line in lines))
        movable = [u for u in units if ItemStatus(u.status) in states]
        movable_ids = {u.id for u in movable}
        return [line for line in lines if line.shipment_item_id in movable_ids], movable

    def _reverse_lines(self, ctx: OrgContext, lines: Sequence[OrderItem]) -> None:
        for line in lines:
            line.fulfillment_status = OrderLineStatus.REVERSED.value
            line.updated_by_id = ctx.actor_id

    def _settle_fulfillment(self, ctx: OrgContext, order: Order) -> None:
        """An order with no fulfilled line left goes back to pending fulfillment."""
        remaining = self.session.scalar(
            select(func.count(OrderItem.id)).where(
                OrderItem.order_id == order.id,
                OrderItem.fulfillment_status == OrderLineStatus.FULFILLED.value,
            )
        )
        if remaining == 0 and order.fulfillment_status != OrderFulfillmentStatus.PENDING:
            order.fulfillment_status = OrderFulfillmentStatus.PENDING.value
            order.updated_by_id = ctx.actor_id

    def _complete(
        self,
        ctx: OrgContext,
        resolution: DeliveryResolution,
        delivery: Delivery,
        resolution_type: ResolutionType,
        notes: str | None = None,
    ) -> None:
        now = self.clock.now()
        resolution.resolution_type = resolution_type.value
        resolution.status = ResolutionStatus.COMPLETED.value
        resolution.completed_at = now
        resolution.processed_by = ctx.actor_id
        resolution.updated_by_id = ctx.actor_id
        if notes is not None:
            resolution.notes = notes
        entry_notes = resolution_type.value if notes is None else f"{resolution_type.value}: {notes}"
        self.deliveries.record_history(
            ctx, delivery, delivery.status, RESOLVED_HISTORY_STATUS, entry_notes,
        )
        self.session.flush()

    def process_re_import(
        self, ctx: OrgContext, resolution_id: UUID, storage_id: UUID,
        notes: str | None = None,
    ) -> ResolutionOutcome:
        """Put the order's units back on the shelf at ``storage_id``."""
        resolution, delivery = self._claim(ctx, resolution_id, ResolutionType.RE_IMPORT)
        order = self._lock_order(ctx, delivery.order_id)
        lines, units = self._order_units(ctx, order.id, RESOLVABLE_ITEM_STATES)
        self.items.ledger.lock(ctx, storage_id)

        self.items.re_import(ctx, units, storage_id)
        self._reverse_lines(ctx, lines)
        self.session.flush()
        self._settle_fulfillment(ctx, order)
        resolution.target_storage_id = storage_id
        self._complete(ctx, resolution, delivery, ResolutionType.RE_IMPORT, notes)

        logger.info(
            "resolution_re_imported",
            extra={
                "resolution_id": str(resolution.id),
                "storage_id": str(storage_id),
                "unit_count": len(units),
            },
        )
        return ResolutionOutcome(
            resolution=ResolutionInfo.from_model(resolution),
            order_id=delivery.order_id,
            affected_item_ids=tuple(u.id for u in units),
            product_ids=_distinct(u.product_id for u in units),
        )

    def process_return(
        self, ctx: OrgContext, resolution_id: UUID, reason: str,
    ) -> ResolutionOutcome:
        """Send the order's units back to their supplier and flag the refund."""
        if not reason or not reason.strip():
            raise MissingFieldError("reason")
        resolution, delivery = self._claim(
            ctx, resolution_id, ResolutionType.RETURN_TO_SUPPLIER,
        )
        order = self._lock_order(ctx, delivery.order_id)
        lines, units = self._order_units(ctx, order.id, RETURNABLE_ITEM_STATES)
        now = self.clock.now()

        self.session.add_all([
            SupplierReturn(
                organization_id=ctx.organization_id,
                resolution_id=resolution.id,
                order_id=delivery.order_id,
                shipment_item_id=unit.id,
                reason=reason.strip(),
                created_by_id=ctx.actor_id,
                created_at=now,
            )
            for unit in units
        ])
        self.items.return_to_supplier(ctx, units)
        self._reverse_lines(ctx, lines)
        self.session.flush()
        self._settle_fulfillment(ctx, order)
        order.payment_status = PaymentStatus.REFUND_PENDING.value
        order.updated_by_id = ctx.actor_id

        resolution.supplier_return_reason = reason.strip()
        self._complete(ctx, resolution, delivery, ResolutionType.RETURN_TO_SUPPLIER, reason.strip())

        logger.info(
            "resolution_returned_to_supplier",
            extra={"resolution_id": str(resolution.id), "unit_count": len(units)},
        )
        return ResolutionOutcome(
            resolution=ResolutionInfo.from_model(resolution),
            order_id=delivery.order_id,
            affected_item_ids=tuple(u.id for u in units),
            product_ids=_distinct(u.product_id for u in units),
        )

    def process_retry(
        self,
        ctx: OrgContext,
        resolution_id: UUID,
        scheduled_date: date | None,
        shipper: ShipperInfo | None = None,
        notes: str | None = None,
    ) -> ResolutionOutcome:
        """Schedule a new delivery attempt; the failed one stays failed."""
        resolution, delivery = self._claim(ctx, resolution_id, ResolutionType.RETRY_DELIVERY)
        shipper = shipper or ShipperInfo(
            name=delivery.shipper_name,
            phone=delivery.shipper_phone,
            tracking_number=delivery.tracking_number,
        )
        new_delivery = self.deliveries.open_delivery(
            ctx, delivery.order_id, shipper, scheduled_date, notes,
        )
        delivery.superseded_by_id = new_delivery.id
        delivery.updated_by_id = ctx.actor_id
        resolution.new_delivery_id = new_delivery.id
        resolution.scheduled_date = scheduled_date
        self._complete(ctx, resolution, delivery, ResolutionType.RETRY_DELIVERY, notes)

        logger.info(
            "resolution_retry_scheduled",
            extra={
                "resolution_id": str(resolution.id),
                "new_delivery_id": str(new_delivery.id),
            },
        )
        return ResolutionOutcome(
            resolution=ResolutionInfo.from_model(resolution),
            order_id=delivery.order_id,
            new_delivery=DeliveryInfo.from_model(new_delivery),
        )
