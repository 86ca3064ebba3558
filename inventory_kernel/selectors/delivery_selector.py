"""
Module: inventory_kernel.selectors.delivery_selector
Responsibility: Read-only delivery queries: single deliveries and
    resolutions, the status history of a delivery and aggregate counts.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import DeliveryInfo, DeliveryStats, HistoryEntry, ResolutionInfo
from inventory_kernel.domain.lifecycle import DeliveryStatus, ResolutionStatus
from inventory_kernel.exceptions import DeliveryNotFoundError, ResolutionNotFoundError
from inventory_kernel.models.delivery import Delivery, DeliveryHistory, DeliveryResolution
from inventory_kernel.selectors.base import BaseSelector


class DeliverySelector(BaseSelector[Delivery]):
    """Queries for deliveries, their history and resolutions."""

    def delivery(self, ctx: OrgContext, delivery_id: UUID) -> DeliveryInfo:
        row = self.session.execute(
            select(Delivery).where(
                Delivery.id == delivery_id,
                Delivery.organization_id == ctx.organization_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise DeliveryNotFoundError(str(delivery_id))
        return DeliveryInfo.from_model(row)

    def deliveries_for_order(self, ctx: OrgContext, order_id: UUID) -> list[DeliveryInfo]:
        rows = self.session.scalars(
            select(Delivery)
            .where(
                Delivery.organization_id == ctx.organization_id,
                Delivery.order_id == order_id,
            )
            .order_by(Delivery.created_at, Delivery.id)
        )
        return [DeliveryInfo.from_model(d) for d in rows]

    def resolution(self, ctx: OrgContext, resolution_id: UUID) -> ResolutionInfo:
        row = self.session.execute(
            select(DeliveryResolution).where(
                DeliveryResolution.id == resolution_id,
                DeliveryResolution.organization_id == ctx.organization_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise ResolutionNotFoundError(str(resolution_id))
        return ResolutionInfo.from_model(row)

    def open_resolution(self, ctx: OrgContext, delivery_id: UUID) -> ResolutionInfo | None:
        """The delivery's resolution that is not yet completed, if any."""
        row = self.session.execute(
            select(DeliveryResolution).where(
                DeliveryResolution.organization_id == ctx.organization_id,
                DeliveryResolution.delivery_id == delivery_id,
                DeliveryResolution.status != ResolutionStatus.COMPLETED.value,
            )
        ).scalar_one_or_none()
        return ResolutionInfo.from_model(row) if row is not None else None

    def history(self, ctx: OrgContext, delivery_id: UUID) -> list[HistoryEntry]:
        """Status changes of one delivery, newest first."""
        rows = self.session.scalars(
            select(DeliveryHistory)
            .where(
                DeliveryHistory.organization_id == ctx.organization_id,
                DeliveryHistory.delivery_id == delivery_id,
            )
            .order_by(DeliveryHistory.created_at.desc())
        )
        return [HistoryEntry.from_model(h) for h in rows]

    def stats(self, ctx: OrgContext) -> DeliveryStats:
        by_status = {s.value: 0 for s in DeliveryStatus}
        by_status.update(self.session.execute(
            select(Delivery.status, func.count(Delivery.id))
            .where(Delivery.organization_id == ctx.organization_id)
            .group_by(Delivery.status)
        ).tuples().all())

        resolutions = self.session.execute(
            select(
                DeliveryResolution.resolution_type,
                DeliveryResolution.status,
                func.count(DeliveryResolution.id),
            )
            .where(DeliveryResolution.organization_id == ctx.organization_id)
            .group_by(DeliveryResolution.resolution_type, DeliveryResolution.status)
        ).all()
        by_type: dict[str, int] = {}
        by_res_status: dict[str, int] = {}
        for resolution_type, status, count in resolutions:
            key = resolution_type or "unassigned"
            by_type[key] = by_type.get(key, 0) + count
            by_res_status[status] = by_res_status.get(status, 0) + count

        return DeliveryStats(
            by_status=by_status,
            resolutions_by_type=by_type,
            resolutions_by_status=by_res_status,
        )
