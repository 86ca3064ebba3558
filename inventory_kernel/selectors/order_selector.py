"""
Module: inventory_kernel.selectors.order_selector
Responsibility: Read path for orders and their lines as consumed by
    invoicing.  Lines from external channels may still have no bound unit;
    their code and shipment_item_id read back as None.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import FulfilledLine, OrderInfo
from inventory_kernel.domain.lifecycle import OrderLineStatus
from inventory_kernel.exceptions import OrderNotFoundError
from inventory_kernel.models.order import Order, OrderItem
from inventory_kernel.selectors.base import BaseSelector


class OrderSelector(BaseSelector[Order]):

    def order(self, ctx: OrgContext, order_id: UUID) -> OrderInfo:
        row = self.session.execute(
            select(Order).where(
                Order.id == order_id,
                Order.organization_id == ctx.organization_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise OrderNotFoundError(str(order_id))
        return OrderInfo.from_model(row)

    def lines(
        self,
        ctx: OrgContext,
        order_id: UUID,
        status: OrderLineStatus | None = None,
    ) -> list[FulfilledLine]:
        stmt = select(OrderItem).where(
            OrderItem.organization_id == ctx.organization_id,
            OrderItem.order_id == order_id,
        )
        if status is not None:
            stmt = stmt.where(OrderItem.fulfillment_status == status.value)
        rows = self.session.scalars(stmt.order_by(OrderItem.created_at, OrderItem.code, OrderItem.id))
        return [FulfilledLine.from_model(line) for line in rows]

    def fulfilled_lines(self, ctx: OrgContext, order_id: UUID) -> list[FulfilledLine]:
        return self.lines(ctx, order_id, OrderLineStatus.FULFILLED)
