"""
FulfillmentService -- binds order lines to concrete shipment items.

Responsibility:
    Records orders handed over by the order collaborator, fulfills them
    from received stock (oldest received first) and binds scanned units to
    pending lines of external-channel orders.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - All-or-nothing: every requested product is checked for enough
      received units before any unit changes state.
    - Candidate units are locked with SKIP LOCKED: a unit another
      transaction is selling is never waited for or sold twice, so it does
      not count as stock until that transaction ends.
    - Each selected unit goes received -> sold and releases one slot at its
      storage; releases are grouped per storage and locked in id order.
    - An order is ``fulfilled`` once it has no pending line.

Failure modes:
    - OrderNotFoundError, OrderLineNotFoundError, ItemNotFoundError.
    - InsufficientStockError with the product, requested and available
      counts; zero units change state.
    - InvalidTransitionError when a scanned unit is not received.
"""

from collections import Counter, OrderedDict
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import (
    FulfilledLine,
    FulfillmentResult,
    OrderInfo,
    PendingOrderLine,
    RequestedLine,
)
from inventory_kernel.domain.lifecycle import (
    ItemStatus,
    OrderDeliveryStatus,
    OrderFulfillmentStatus,
    OrderLineStatus,
    OrderSource,
    PaymentStatus,
    item_transition,
)
from inventory_kernel.exceptions import (
    InsufficientStockError,
    MissingFieldError,
    OrderLineNotFoundError,
    OrderNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.order import Order, OrderItem
from inventory_kernel.models.shipment import ShipmentItem
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.capacity_ledger import CapacityLedger
from inventory_kernel.services.shipment_item_service import ShipmentItemService

logger = get_logger("services.fulfillment")


class FulfillmentService(BaseService[OrderItem]):
    """
    Fulfillment linker.

    Guarantees:
        - FIFO rotation: units are picked by scanned_at, then code.
        - Created lines carry code and shipment_item_id; lines from
          external channels keep both NULL until a unit is bound.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        items: ShipmentItemService,
        ledger: CapacityLedger,
    ):
        super().__init__(session, clock)
        self.items = items
        self.ledger = ledger

    def lock_order(self, ctx: OrgContext, order_id: UUID) -> Order:
        order = self.session.execute(
            select(Order)
            .where(Order.id == order_id, Order.organization_id == ctx.organization_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def register_order(
        self,
        ctx: OrgContext,
        order_number: str,
        customer_id: UUID | None = None,
        source: OrderSource = OrderSource.MANUAL,
        total_amount: int = 0,
        lines: Sequence[PendingOrderLine] = (),
        payment_status: PaymentStatus = PaymentStatus.PENDING,
    ) -> OrderInfo:
        """Record an order (and its unbound lines) handed over by a sales channel."""
        if not order_number or not order_number.strip():
            raise MissingFieldError("order_number")
        order = Order(
            organization_id=ctx.organization_id,
            order_number=order_number.strip(),
            customer_id=customer_id,
            source=source.value,
            total_amount=total_amount,
            payment_status=payment_status.value,
            delivery_status=OrderDeliveryStatus.NONE.value,
            fulfillment_status=OrderFulfillmentStatus.PENDING.value,
            created_by_id=ctx.actor_id,
        )
        self.session.add(order)
        self.session.flush()
        for line in lines:
            for _ in range(line.quantity):
                self.session.add(OrderItem(
                    organization_id=ctx.organization_id,
                    order_id=order.id,
                    product_id=line.product_id,
                    quantity=1,
                    price=line.price,
                    fulfillment_status=OrderLineStatus.PENDING.value,
                    created_by_id=ctx.actor_id,
                ))
        self.session.flush()
        logger.info(
            "order_registered",
            extra={
                "order_id": str(order.id),
                "source": source.value,
                "pending_lines": sum(line.quantity for line in lines),
            },
        )
        return OrderInfo.from_model(order)

    def fulfill_order(
        self,
        ctx: OrgContext,
        order_id: UUID,
        requested_lines: Sequence[RequestedLine],
    ) -> FulfillmentResult:
        """Sell the oldest received units for each requested product."""
        if not requested_lines:
            raise MissingFieldError("requested_lines")
        order = self.lock_order(ctx, order_id)

        demand: OrderedDict[UUID, list[RequestedLine]] = OrderedDict()
        for line in requested_lines:
            demand.setdefault(line.product_id, []).append(line)

        selected: dict[UUID, list[ShipmentItem]] = {}
        for product_id, lines in demand.items():
            wanted = sum(line.quantity for line in lines)
            units = list(self.session.scalars(
                select(ShipmentItem)
                .where(
                    ShipmentItem.organization_id == ctx.organization_id,
                    ShipmentItem.product_id == product_id,
                    ShipmentItem.status == ItemStatus.RECEIVED.value,
                )
                .order_by(ShipmentItem.scanned_at, ShipmentItem.code)
                .limit(wanted)
                .with_for_update(skip_locked=True)
                .execution_options(populate_existing=True)
            ))
            if len(units) < wanted:
                logger.warning(
                    "fulfillment_insufficient_stock",
                    extra={
                        "product_id": str(product_id),
                        "requested": wanted,
                        "available": len(units),
                    },
                )
                raise InsufficientStockError(str(product_id), wanted, len(units))
            selected[product_id] = units

        releases: Counter[UUID] = Counter(
            unit.storage_id for units in selected.values() for unit in units
        )
        self.ledger.release_many(ctx, releases)

        now = self.clock.now()
        created: list[OrderItem] = []
        for product_id, lines in demand.items():
            units = iter(selected[product_id])
            for line in lines:
                for _ in range(line.quantity):
                    unit = next(units)
                    item_transition(unit.status, ItemStatus.SOLD, item_code=unit.code)
                    self.items.apply_sold(ctx, unit, order.id, order.customer_id)
                    created.append(OrderItem(
                        organization_id=ctx.organization_id,
                        order_id=order.id,
                        product_id=product_id,
                        quantity=1,
                        price=line.unit_price,
                        shipment_item_id=unit.id,
                        code=unit.code,
                        fulfillment_status=OrderLineStatus.FULFILLED.value,
                        scanned_at=now,
                        created_by_id=ctx.actor_id,
                    ))
        self.session.add_all(created)
        self.session.flush()
        status = self._refresh_order_status(ctx, order)

        logger.info(
            "order_fulfilled",
            extra={
                "order_id": str(order.id),
                "unit_count": len(created),
                "product_count": len(demand),
                "storages_released": len(releases),
            },
        )
        return FulfillmentResult(
            order_id=order.id,
            lines=tuple(FulfilledLine.from_model(line) for line in created),
            order_fulfillment_status=status.value,
        )

    def fulfill_line_by_code(
        self, ctx: OrgContext, order_id: UUID, code: str,
    ) -> FulfillmentResult:
        """Bind one scanned received unit to a pending line of the same product."""
        order = self.lock_order(ctx, order_id)
        unit = self.items.lock_item(ctx, code)
        item_transition(unit.status, ItemStatus.SOLD, item_code=code)

        line = self.session.execute(
            select(OrderItem)
            .where(
                OrderItem.order_id == order.id,
                OrderItem.product_id == unit.product_id,
                OrderItem.shipment_item_id.is_(None),
                OrderItem.fulfillment_status == OrderLineStatus.PENDING.value,
            )
            .order_by(OrderItem.created_at, OrderItem.id)
            .limit(1)
            .with_for_update()
        ).scalar_one_or_none()
        if line is None:
            raise OrderLineNotFoundError(str(order.id), str(unit.product_id))

        self.ledger.release(ctx, unit.storage_id, 1)
        self.items.apply_sold(ctx, unit, order.id, order.customer_id)
        line.shipment_item_id = unit.id
        line.code = unit.code
        line.fulfillment_status = OrderLineStatus.FULFILLED.value
        line.scanned_at = self.clock.now()
        line.updated_by_id = ctx.actor_id
        self.session.flush()
        status = self._refresh_order_status(ctx, order)

        logger.info(
            "order_line_fulfilled",
            extra={"order_id": str(order.id), "code": code, "order_status": status.value},
        )
        return FulfillmentResult(
            order_id=order.id,
            lines=(FulfilledLine.from_model(line),),
            order_fulfillment_status=status.value,
        )

    def _refresh_order_status(self, ctx: OrgContext, order: Order) -> OrderFulfillmentStatus:
        pending = self.session.scalar(
            select(func.count(OrderItem.id)).where(
                OrderItem.order_id == order.id,
                OrderItem.fulfillment_status == OrderLineStatus.PENDING.value,
            )
        )
        status = (
            OrderFulfillmentStatus.FULFILLED if pending == 0
            else OrderFulfillmentStatus.IN_PROGRESS
        )
        order.fulfillment_status = status.value
        order.updated_by_id = ctx.actor_id
        self.session.flush()
        return status
