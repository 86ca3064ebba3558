"""
Module: inventory_kernel.selectors.inventory_selector
Responsibility: Read-only views over units, storages and the code pool:
    item lookup, scan progress, storage listings and metrics, derived
    occupancy and the capacity audit.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - used_capacity is the only stored occupancy figure.  Occupancy rows
      derive the received-unit count at query time and are never written
      back; capacity_audit() lists the storages where the two disagree.
"""

from uuid import UUID

from sqlalchemy import case, func, select

from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import (
    OccupancyRow,
    PoolBatch,
    PoolStats,
    ScanProgress,
    ShipmentItemInfo,
    StorageInfo,
    StorageMetrics,
)
from inventory_kernel.domain.lifecycle import AllocationMode, CodeStatus, ItemStatus
from inventory_kernel.exceptions import ItemNotFoundError, ShipmentNotFoundError
from inventory_kernel.models.code import Code
from inventory_kernel.models.shipment import Shipment, ShipmentItem
from inventory_kernel.models.storage import Storage
from inventory_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector[ShipmentItem]):
    """Queries for units, storages and pooled codes."""

    def item_by_code(self, ctx: OrgContext, code: str) -> ShipmentItemInfo:
        item = self.session.execute(
            select(ShipmentItem).where(
                ShipmentItem.organization_id == ctx.organization_id,
                ShipmentItem.code == code,
            )
        ).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(code)
        return ShipmentItemInfo.from_model(item)

    def shipment_items(self, ctx: OrgContext, shipment_id: UUID) -> list[ShipmentItemInfo]:
        items = self.session.scalars(
            select(ShipmentItem)
            .where(
                ShipmentItem.organization_id == ctx.organization_id,
                ShipmentItem.shipment_id == shipment_id,
            )
            .order_by(ShipmentItem.code)
        )
        return [ShipmentItemInfo.from_model(i) for i in items]

    def scan_progress(self, ctx: OrgContext, shipment_id: UUID) -> ScanProgress:
        exists = self.session.scalar(
            select(Shipment.id).where(
                Shipment.id == shipment_id,
                Shipment.organization_id == ctx.organization_id,
            )
        )
        if exists is None:
            raise ShipmentNotFoundError(str(shipment_id))

        total, pending = self.session.execute(
            select(
                func.count(ShipmentItem.id),
                func.coalesce(
                    func.sum(case((ShipmentItem.status == ItemStatus.PENDING.value, 1), else_=0)),
                    0,
                ),
            ).where(ShipmentItem.shipment_id == shipment_id)
        ).one()
        return ScanProgress(
            shipment_id=shipment_id,
            total_items=total,
            scanned_items=total - pending,
            pending_items=pending,
        )

    def list_storages(self, ctx: OrgContext) -> list[StorageInfo]:
        """Storages ordered by priority (highest first), then name."""
        rows = self.session.scalars(
            select(Storage)
            .where(Storage.organization_id == ctx.organization_id)
            .order_by(Storage.priority.desc(), Storage.name)
        )
        return [StorageInfo.from_model(s) for s in rows]

    def storage(self, ctx: OrgContext, storage_id: UUID) -> StorageInfo | None:
        row = self.session.execute(
            select(Storage).where(
                Storage.id == storage_id,
                Storage.organization_id == ctx.organization_id,
            )
        ).scalar_one_or_none()
        return StorageInfo.from_model(row) if row is not None else None

    def storage_metrics(self, ctx: OrgContext) -> StorageMetrics:
        count, capacity, used = self.session.execute(
            select(
                func.count(Storage.id),
                func.coalesce(func.sum(Storage.capacity), 0),
                func.coalesce(func.sum(Storage.used_capacity), 0),
            ).where(Storage.organization_id == ctx.organization_id)
        ).one()
        rate = round(used * 100 / capacity) if capacity else 0
        return StorageMetrics(
            total_storages=count,
            total_capacity=capacity,
            total_used_capacity=used,
            utilization_rate=rate,
        )

    def occupancy(self, ctx: OrgContext) -> list[OccupancyRow]:
        """Counter and derived received-unit count for every storage."""
        received = (
            select(ShipmentItem.storage_id, func.count(ShipmentItem.id).label("n"))
            .where(
                ShipmentItem.organization_id == ctx.organization_id,
                ShipmentItem.status == ItemStatus.RECEIVED.value,
            )
            .group_by(ShipmentItem.storage_id)
            .subquery()
        )
        rows = self.session.execute(
            select(
                Storage.id,
                Storage.name,
                Storage.used_capacity,
                func.coalesce(received.c.n, 0),
            )
            .outerjoin(received, received.c.storage_id == Storage.id)
            .where(Storage.organization_id == ctx.organization_id)
            .order_by(Storage.priority.desc(), Storage.name)
        )
        return [
            OccupancyRow(storage_id=sid, name=name, used_capacity=used, received_items=n)
            for sid, name, used, n in rows
        ]

    def capacity_audit(self, ctx: OrgContext) -> list[OccupancyRow]:
        return [row for row in self.occupancy(ctx) if not row.is_consistent]

    def pool_stats(self, ctx: OrgContext) -> PoolStats:
        available, used = self.session.execute(
            select(
                func.coalesce(
                    func.sum(case((Code.status == CodeStatus.AVAILABLE.value, 1), else_=0)), 0,
                ),
                func.coalesce(
                    func.sum(case((Code.status == CodeStatus.USED.value, 1), else_=0)), 0,
                ),
            ).where(
                Code.organization_id == ctx.organization_id,
                Code.mode == AllocationMode.POOLED.value,
            )
        ).one()
        return PoolStats(available=available, used=used, total=available + used)

    def pool_batches(self, ctx: OrgContext) -> list[PoolBatch]:
        """Pooled batches, newest first."""
        generated = func.min(Code.generated_at)
        rows = self.session.execute(
            select(
                Code.batch_id,
                generated,
                func.count(Code.id),
                func.sum(case((Code.status == CodeStatus.AVAILABLE.value, 1), else_=0)),
            )
            .where(
                Code.organization_id == ctx.organization_id,
                Code.mode == AllocationMode.POOLED.value,
            )
            .group_by(Code.batch_id)
            .order_by(generated.desc())
        )
        return [
            PoolBatch(batch_id=bid, generated_at=at, count=n, available_count=avail or 0)
            for bid, at, n, avail in rows
        ]
