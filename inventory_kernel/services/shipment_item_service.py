"""
ShipmentItemService -- the shipment item state machine.

Responsibility:
    Records inbound shipments and drives every lifecycle change of a
    physical unit: scan, bulk receive, sale, shipping, customer return and
    the resolution-driven moves (re-import, return to supplier).  Each
    change that moves a unit in or out of a storage location goes through
    the CapacityLedger in the same transaction.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - Transitions follow domain.lifecycle.ITEM_TRANSITIONS.
    - storage_id is set iff received; order_id/sold_at iff sold or shipped.
    - Rescanning any non-pending unit is an idempotent no-op: no capacity
      change, ``was_already_received=True``.
    - Bulk receive admits the whole pending set at once or nothing.
    - A shipment becomes ``received`` once none of its items is pending.

Failure modes:
    - ItemNotFoundError, ShipmentNotFoundError, StorageNotFoundError.
    - CapacityExceededError / InsufficientCapacityError from the ledger.
    - InvalidTransitionError for any move outside the transition table.
    - DuplicateReceiptNumberError when the receipt number is taken.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import (
    BulkReceiveResult,
    ScanResult,
    ShipmentItemInfo,
    ShipmentLine,
    ShipmentRecord,
)
from inventory_kernel.domain.lifecycle import (
    AllocationMode,
    CapacityEffect,
    ItemStatus,
    ShipmentStatus,
    WarrantyStatus,
    item_transition,
)
from inventory_kernel.exceptions import (
    CodeAlreadyBoundError,
    DuplicateReceiptNumberError,
    ItemNotFoundError,
    MissingFieldError,
    ShipmentNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.shipment import Shipment, ShipmentItem
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.capacity_ledger import CapacityLedger
from inventory_kernel.services.code_allocator import CodeAllocator

logger = get_logger("services.items")


class ShipmentItemService(BaseService[ShipmentItem]):
    """
    Lifecycle of one physical unit.

    Contract:
        Public methods take canonical code values (already parsed by the
        caller's CodeFormatChain) and an explicit OrgContext.  Methods whose
        name starts with ``apply_`` operate on rows the caller has already
        locked and leave capacity to the caller, so bulk paths can make one
        admission for many units.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        ledger: CapacityLedger,
        allocator: CodeAllocator,
        default_warranty_months: int = 12,
    ):
        super().__init__(session, clock)
        self.ledger = ledger
        self.allocator = allocator
        self._default_warranty_months = default_warranty_months

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def lock_item(self, ctx: OrgContext, code: str) -> ShipmentItem:
        item = self.session.execute(
            select(ShipmentItem)
            .where(
                ShipmentItem.organization_id == ctx.organization_id,
                ShipmentItem.code == code,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(code)
        return item

    def lock_items_by_id(self, ctx: OrgContext, item_ids: Iterable[UUID]) -> list[ShipmentItem]:
        ids = sorted(set(item_ids), key=str)
        if not ids:
            return []
        return list(self.session.scalars(
            select(ShipmentItem)
            .where(
                ShipmentItem.organization_id == ctx.organization_id,
                ShipmentItem.id.in_(ids),
            )
            .order_by(ShipmentItem.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ))

    def _get_shipment(self, ctx: OrgContext, shipment_id: UUID) -> Shipment:
        shipment = self.session.execute(
            select(Shipment).where(
                Shipment.id == shipment_id,
                Shipment.organization_id == ctx.organization_id,
            )
        ).scalar_one_or_none()
        if shipment is None:
            raise ShipmentNotFoundError(str(shipment_id))
        return shipment

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def create_shipment(
        self,
        ctx: OrgContext,
        receipt_number: str,
        receipt_date: date,
        supplier_name: str,
        lines: Sequence[ShipmentLine],
        notes: str | None = None,
    ) -> ShipmentRecord:
        """
        Record an inbound shipment with one pending item per unit.

        Lines without codes get immediate allocations from the current
        format; lines with codes bind pooled codes.
        """
        if not receipt_number or not receipt_number.strip():
            raise MissingFieldError("receipt_number")
        if not supplier_name or not supplier_name.strip():
            raise MissingFieldError("supplier_name")
        if not lines:
            raise MissingFieldError("lines")
        stamped = Counter(value for line in lines for value in line.codes)
        repeated = sorted(value for value, count in stamped.items() if count > 1)
        if repeated:
            raise CodeAlreadyBoundError(repeated[0])

        existing = self.session.scalar(
            select(Shipment.id).where(
                Shipment.organization_id == ctx.organization_id,
                Shipment.receipt_number == receipt_number,
            )
        )
        if existing is not None:
            raise DuplicateReceiptNumberError(receipt_number)

        shipment = Shipment(
            id=uuid4(),
            organization_id=ctx.organization_id,
            receipt_number=receipt_number.strip(),
            receipt_date=receipt_date,
            supplier_name=supplier_name.strip(),
            status=ShipmentStatus.PENDING.value,
            notes=notes,
            created_by_id=ctx.actor_id,
        )
        self.session.add(shipment)
        self.session.flush()

        unstamped = sum(line.quantity for line in lines if not line.codes)
        fresh: list[str] = []
        if unstamped:
            allocation = self.allocator.allocate(
                ctx, unstamped, mode=AllocationMode.IMMEDIATE, batch_id=shipment.id,
            )
            fresh = list(allocation.values)

        items: list[ShipmentItem] = []
        for line in lines:
            if line.codes:
                codes = [self.allocator.bind_pooled(ctx, value).value for value in line.codes]
            else:
                codes, fresh = fresh[:line.quantity], fresh[line.quantity:]
            months = (
                line.warranty_months
                if line.warranty_months is not None
                else self._default_warranty_months
            )
            for value in codes:
                items.append(ShipmentItem(
                    organization_id=ctx.organization_id,
                    shipment_id=shipment.id,
                    product_id=line.product_id,
                    code=value,
                    status=ItemStatus.PENDING.value,
                    warranty_months=months,
                    warranty_status=WarrantyStatus.PENDING.value,
                    customer_scan_count=0,
                    created_by_id=ctx.actor_id,
                ))
        self.session.add_all(items)
        self.session.flush()

        logger.info(
            "shipment_created",
            extra={
                "shipment_id": str(shipment.id),
                "receipt_number": shipment.receipt_number,
                "item_count": len(items),
                "allocated_count": unstamped,
            },
        )
        return ShipmentRecord(
            shipment_id=shipment.id,
            receipt_number=shipment.receipt_number,
            supplier_name=shipment.supplier_name,
            receipt_date=shipment.receipt_date,
            status=ShipmentStatus(shipment.status),
            items=tuple(ShipmentItemInfo.from_model(i) for i in items),
        )

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan(self, ctx: OrgContext, code: str, storage_id: UUID) -> ScanResult:
        """pending -> received with one capacity admission; no-op otherwise."""
        item = self.lock_item(ctx, code)
        if item.status != ItemStatus.PENDING:
            logger.info(
                "scan_already_processed",
                extra={"code": code, "status": item.status},
            )
            return ScanResult(item=ShipmentItemInfo.from_model(item), was_already_received=True)

        item_transition(item.status, ItemStatus.RECEIVED, item_code=code)
        self.ledger.admit(ctx, storage_id, 1)
        self.apply_received(ctx, item, storage_id)
        self.session.flush()
        self.reconcile_shipment(ctx, item.shipment_id)

        logger.info(
            "item_scanned",
            extra={"code": code, "storage_id": str(storage_id)},
        )
        return ScanResult(item=ShipmentItemInfo.from_model(item), was_already_received=False)

    def bulk_receive(
        self, ctx: OrgContext, shipment_id: UUID, storage_id: UUID,
    ) -> BulkReceiveResult:
        """Receive every pending item of a shipment with one admission."""
        self._get_shipment(ctx, shipment_id)
        pending = list(self.session.scalars(
            select(ShipmentItem)
            .where(
                ShipmentItem.organization_id == ctx.organization_id,
                ShipmentItem.shipment_id == shipment_id,
                ShipmentItem.status == ItemStatus.PENDING.value,
            )
            .order_by(ShipmentItem.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ))
        if not pending:
            logger.info("bulk_receive_nothing_pending", extra={"shipment_id": str(shipment_id)})
            return BulkReceiveResult(shipment_id=shipment_id, storage_id=storage_id, updated_count=0)

        self.ledger.admit(ctx, storage_id, len(pending), bulk=True)
        for item in pending:
            self.apply_received(ctx, item, storage_id)
        self.session.flush()
        self.reconcile_shipment(ctx, shipment_id)

        logger.info(
            "bulk_received",
            extra={
                "shipment_id": str(shipment_id),
                "storage_id": str(storage_id),
                "updated_count": len(pending),
            },
        )
        return BulkReceiveResult(
            shipment_id=shipment_id,
            storage_id=storage_id,
            updated_count=len(pending),
            product_ids=_distinct(i.product_id for i in pending),
        )

    def reconcile_shipment(self, ctx: OrgContext, shipment_id: UUID) -> ShipmentStatus:
        """Mark the shipment received once no item of it is pending."""
        shipment = self._get_shipment(ctx, shipment_id)
        pending = self.session.scalar(
            select(func.count(ShipmentItem.id)).where(
                ShipmentItem.shipment_id == shipment_id,
                ShipmentItem.status == ItemStatus.PENDING.value,
            )
        )
        target = ShipmentStatus.RECEIVED if pending == 0 else ShipmentStatus.PENDING
        if shipment.status != target:
            shipment.status = target.value
            shipment.updated_by_id = ctx.actor_id
            self.session.flush()
            logger.info(
                "shipment_status_reconciled",
                extra={"shipment_id": str(shipment_id), "status": target.value},
            )
        return target

    # ------------------------------------------------------------------
    # Sale and dispatch
    # ------------------------------------------------------------------

    def fulfill(
        self, ctx: OrgContext, code: str, order_id: UUID, customer_id: UUID | None,
    ) -> ShipmentItemInfo:
        """received -> sold, releasing the unit's capacity."""
        item = self.lock_item(ctx, code)
        item_transition(item.status, ItemStatus.SOLD, item_code=code)
        self.ledger.release(ctx, item.storage_id, 1)
        self.apply_sold(ctx, item, order_id, customer_id)
        self.session.flush()
        return ShipmentItemInfo.from_model(item)

    def mark_shipped(self, ctx: OrgContext, code: str) -> ShipmentItemInfo:
        item = self.lock_item(ctx, code)
        item_transition(item.status, ItemStatus.SHIPPED, item_code=code)
        item.status = ItemStatus.SHIPPED.value
        item.updated_by_id = ctx.actor_id
        self.session.flush()
        logger.info("item_shipped", extra={"code": code, "order_id": str(item.order_id)})
        return ShipmentItemInfo.from_model(item)

    def mark_returned(self, ctx: OrgContext, code: str) -> ShipmentItemInfo:
        """shipped -> returned: the customer sent the unit back after delivery."""
        item = self.lock_item(ctx, code)
        item_transition(item.status, ItemStatus.RETURNED, item_code=code)
        previous_order = item.order_id
        item.status = ItemStatus.RETURNED.value
        item.order_id = None
        item.sold_at = None
        item.warranty_status = WarrantyStatus.VOID.value
        item.updated_by_id = ctx.actor_id
        self.session.flush()
        logger.info("item_returned", extra={"code": code, "order_id": str(previous_order)})
        return ShipmentItemInfo.from_model(item)

    def record_customer_scan(self, ctx: OrgContext, code: str) -> ShipmentItemInfo:
        """Count a scan from the public warranty page. No lifecycle effect."""
        item = self.lock_item(ctx, code)
        now = self.clock.now()
        if item.first_scanned_by_customer_at is None:
            item.first_scanned_by_customer_at = now
        item.last_scanned_by_customer_at = now
        item.customer_scan_count += 1
        self.session.flush()
        return ShipmentItemInfo.from_model(item)

    # ------------------------------------------------------------------
    # Field updates on locked rows (capacity handled by the caller)
    # ------------------------------------------------------------------

    def apply_received(self, ctx: OrgContext, item: ShipmentItem, storage_id: UUID) -> None:
        item.status = ItemStatus.RECEIVED.value
        item.storage_id = storage_id
        item.scanned_at = self.clock.now()
        item.order_id = None
        item.customer_id = None
        item.sold_at = None
        item.updated_by_id = ctx.actor_id

    def apply_sold(
        self, ctx: OrgContext, item: ShipmentItem, order_id: UUID, customer_id: UUID | None,
    ) -> None:
        item.status = ItemStatus.SOLD.value
        item.storage_id = None
        item.order_id = order_id
        item.customer_id = customer_id
        item.sold_at = self.clock.now()
        item.updated_by_id = ctx.actor_id

    def re_import(
        self, ctx: OrgContext, items: Sequence[ShipmentItem], storage_id: UUID,
    ) -> None:
        """sold/shipped -> received at ``storage_id`` with one batch admission."""
        for item in items:
            item_transition(item.status, ItemStatus.RECEIVED, item_code=item.code)
        if items:
            self.ledger.admit(ctx, storage_id, len(items))
        for item in items:
            self.apply_received(ctx, item, storage_id)
            item.warranty_status = WarrantyStatus.PENDING.value
            item.delivered_at = None
            item.warranty_expires_at = None
        self.session.flush()
        logger.info(
            "items_re_imported",
            extra={"storage_id": str(storage_id), "count": len(items)},
        )

    def return_to_supplier(self, ctx: OrgContext, items: Sequence[ShipmentItem]) -> None:
        """
        Move units back to pending; they leave the warehouse entirely.

        Units still received release their slot; sold and shipped units
        released theirs at fulfillment.
        """
        releases: Counter[UUID] = Counter()
        for item in items:
            transition = item_transition(item.status, ItemStatus.PENDING, item_code=item.code)
            if transition.capacity_effect is CapacityEffect.RELEASE:
                releases[item.storage_id] += 1
        self.ledger.release_many(ctx, releases)

        for item in items:
            item.status = ItemStatus.PENDING.value
            item.storage_id = None
            item.order_id = None
            item.customer_id = None
            item.sold_at = None
            item.scanned_at = None
            item.warranty_status = WarrantyStatus.VOID.value
            item.updated_by_id = ctx.actor_id
        self.session.flush()
        for shipment_id in _distinct(item.shipment_id for item in items):
            self.reconcile_shipment(ctx, shipment_id)
        logger.info("items_returned_to_supplier", extra={"count": len(items)})


def _distinct(values: Iterable[UUID]) -> tuple[UUID, ...]:
    return tuple(sorted(set(values), key=str))
