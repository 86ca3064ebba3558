"""
WarehouseOperations -- public facade of the inventory system.

Responsibility:
    One method per use case.  Each method validates its raw inputs
    (scanned codes, failure categories, quantities) before any transaction
    opens, runs the kernel services inside one UnitOfWork, and queues the
    post-commit notifications downstream collaborators need.

Architecture position:
    Services -- outermost layer; composes inventory_config and
    inventory_kernel.  HTTP handlers, CLIs and workers call this class.

Invariants enforced:
    - Malformed input never opens a transaction.
    - Every operation takes an explicit OrgContext.
    - Notifications go out only after commit; their failure never changes
      the result.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import date
from random import Random
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from inventory_config import InventoryConfig, get_active_config
from inventory_kernel.db.engine import get_session_factory, init_engine_from_url
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.codes import CodeFormatChain, build_code_url, default_format_chain
from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import (
    AllocationResult,
    BulkReceiveResult,
    ClaimResult,
    DeliveryConfirmation,
    DeliveryFailure,
    DeliveryInfo,
    DeliveryStats,
    FulfilledLine,
    FulfillmentResult,
    HistoryEntry,
    OccupancyRow,
    OrderInfo,
    PendingOrderLine,
    PoolBatch,
    PoolStats,
    RequestedLine,
    ResolutionInfo,
    ResolutionOutcome,
    ScanProgress,
    ScanResult,
    ShipmentItemInfo,
    ShipmentLine,
    ShipmentRecord,
    ShipperInfo,
    StorageInfo,
    StorageMetrics,
)
from inventory_kernel.domain.lifecycle import (
    AllocationMode,
    FailureCategory,
    OrderLineStatus,
    OrderSource,
    PaymentStatus,
    ResolutionType,
)
from inventory_kernel.exceptions import InvalidQuantityError, MissingFieldError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services import parse_failure_category
from inventory_services.notifications import Notification, NotificationDispatcher
from inventory_services.unit_of_work import UnitOfWork

logger = get_logger("services.warehouse")


class WarehouseOperations:
    """
    Facade over the inventory kernel.

    Contract:
        Inputs named ``raw_code`` accept whatever a scanner produced: a bare
        code in any case, with dashes or spaces, or a full public URL.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: InventoryConfig,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
        rng: Random | None = None,
    ):
        self.config = config
        self.formats: CodeFormatChain = default_format_chain(
            config.codes.current_format, config.codes.length,
        )
        self._uow = UnitOfWork(
            session_factory,
            clock or SystemClock(),
            config,
            self.formats,
            dispatcher or NotificationDispatcher(),
            rng,
        )

    @classmethod
    def from_config(
        cls,
        config: InventoryConfig | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> WarehouseOperations:
        """Initialize the engine from configuration and build the facade."""
        config = config or get_active_config()
        db = config.database
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
        )
        return cls(get_session_factory(), config, dispatcher=dispatcher)

    # ------------------------------------------------------------------
    # Input normalization
    # ------------------------------------------------------------------

    def parse_code(self, raw_code: str) -> str:
        """Canonical value of a scanned code; InvalidCodeFormatError otherwise."""
        return self.formats.parse(raw_code, self.config.codes.url_marker).value

    def code_url(self, value: str) -> str:
        return build_code_url(self.config.qr.base_url, value, self.config.codes.url_marker)

    def display_code(self, value: str) -> str:
        return self.formats.display(value)

    # ------------------------------------------------------------------
    # Codes
    # ------------------------------------------------------------------

    def allocate_codes(
        self,
        ctx: OrgContext,
        n: int,
        mode: AllocationMode = AllocationMode.POOLED,
    ) -> AllocationResult:
        maximum = self.config.codes.max_batch_size
        if n < 1 or n > maximum:
            raise InvalidQuantityError("n", n, minimum=1, maximum=maximum)
        with self._uow.transaction(ctx, "allocate_codes") as kernel:
            return kernel.allocator.allocate(ctx, n, mode=mode)

    def claim_code(self, ctx: OrgContext, raw_code: str) -> ClaimResult:
        value = self.parse_code(raw_code)
        with self._uow.transaction(ctx, "claim_code") as kernel:
            return kernel.allocator.claim(ctx, value)

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
        if not lines:
            raise MissingFieldError("lines")
        normalized = [
            replace(line, codes=tuple(self.parse_code(c) for c in line.codes))
            for line in lines
        ]
        with self._uow.transaction(ctx, "create_shipment") as kernel:
            record = kernel.items.create_shipment(
                ctx, receipt_number, receipt_date, supplier_name, normalized, notes,
            )
            kernel.notify(Notification.search_refresh(
                ctx.organization_id, "shipments", [record.shipment_id],
            ))
            return record

    def scan_item(self, ctx: OrgContext, raw_code: str, storage_id: UUID) -> ScanResult:
        value = self.parse_code(raw_code)
        with self._uow.transaction(ctx, "scan_item") as kernel:
            result = kernel.items.scan(ctx, value, storage_id)
            if not result.was_already_received:
                kernel.notify(
                    Notification.inventory_sync(ctx.organization_id, [result.item.product_id]),
                    Notification.search_refresh(
                        ctx.organization_id, "shipments", [result.item.shipment_id],
                    ),
                )
            return result

    def bulk_receive(
        self, ctx: OrgContext, shipment_id: UUID, storage_id: UUID,
    ) -> BulkReceiveResult:
        with self._uow.transaction(ctx, "bulk_receive") as kernel:
            result = kernel.items.bulk_receive(ctx, shipment_id, storage_id)
            if result.updated_count:
                kernel.notify(
                    Notification.inventory_sync(ctx.organization_id, result.product_ids),
                    Notification.search_refresh(ctx.organization_id, "shipments", [shipment_id]),
                )
            return result

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

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
        for line in lines:
            if line.quantity < 1:
                raise InvalidQuantityError("quantity", line.quantity, minimum=1)
        with self._uow.transaction(ctx, "register_order") as kernel:
            return kernel.fulfillment.register_order(
                ctx, order_number, customer_id, source, total_amount, lines, payment_status,
            )

    def fulfill_order(
        self, ctx: OrgContext, order_id: UUID, requested_lines: Sequence[RequestedLine],
    ) -> FulfillmentResult:
        if not requested_lines:
            raise MissingFieldError("requested_lines")
        with self._uow.transaction(ctx, "fulfill_order") as kernel:
            result = kernel.fulfillment.fulfill_order(ctx, order_id, requested_lines)
            kernel.notify(
                Notification.inventory_sync(ctx.organization_id, result.product_ids),
                Notification.fulfillment_created(ctx.organization_id, order_id),
            )
            return result

    def fulfill_line_by_code(
        self, ctx: OrgContext, order_id: UUID, raw_code: str,
    ) -> FulfillmentResult:
        value = self.parse_code(raw_code)
        with self._uow.transaction(ctx, "fulfill_line_by_code") as kernel:
            result = kernel.fulfillment.fulfill_line_by_code(ctx, order_id, value)
            kernel.notify(
                Notification.inventory_sync(ctx.organization_id, result.product_ids),
                Notification.fulfillment_created(ctx.organization_id, order_id),
            )
            return result

    def mark_shipped(self, ctx: OrgContext, raw_code: str) -> ShipmentItemInfo:
        value = self.parse_code(raw_code)
        with self._uow.transaction(ctx, "mark_shipped") as kernel:
            return kernel.items.mark_shipped(ctx, value)

    def mark_returned(self, ctx: OrgContext, raw_code: str) -> ShipmentItemInfo:
        value = self.parse_code(raw_code)
        with self._uow.transaction(ctx, "mark_returned") as kernel:
            return kernel.items.mark_returned(ctx, value)

    def record_customer_scan(self, ctx: OrgContext, raw_code: str) -> ShipmentItemInfo:
        value = self.parse_code(raw_code)
        with self._uow.transaction(ctx, "record_customer_scan") as kernel:
            return kernel.items.record_customer_scan(ctx, value)

    # ------------------------------------------------------------------
    # Deliveries
    # ------------------------------------------------------------------

    def create_delivery(
        self,
        ctx: OrgContext,
        order_id: UUID,
        shipper: ShipperInfo,
        scheduled_date: date | None = None,
        notes: str | None = None,
    ) -> DeliveryInfo:
        if not shipper.name or not shipper.name.strip():
            raise MissingFieldError("shipper.name")
        with self._uow.transaction(ctx, "create_delivery") as kernel:
            delivery = kernel.deliveries.create_delivery(
                ctx, order_id, shipper, scheduled_date, notes,
            )
            kernel.notify(Notification.search_refresh(
                ctx.organization_id, "orders", [order_id],
            ))
            return delivery

    def mark_delivered(
        self, ctx: OrgContext, delivery_id: UUID, notes: str | None = None,
    ) -> DeliveryConfirmation:
        with self._uow.transaction(
            ctx, "mark_delivered", delivery_id=str(delivery_id),
        ) as kernel:
            result = kernel.deliveries.mark_delivered(ctx, delivery_id, notes)
            kernel.notify(Notification.delivery_completed(
                ctx.organization_id, result.delivery.order_id, delivery_id,
            ))
            return result

    def mark_failed(
        self,
        ctx: OrgContext,
        delivery_id: UUID,
        reason: str,
        category: str | FailureCategory,
        notes: str | None = None,
    ) -> DeliveryFailure:
        parsed = parse_failure_category(category)
        if not reason or not reason.strip():
            raise MissingFieldError("reason")
        with self._uow.transaction(
            ctx, "mark_failed", delivery_id=str(delivery_id),
        ) as kernel:
            return kernel.deliveries.mark_failed(ctx, delivery_id, reason, parsed, notes)

    def cancel_delivery(
        self, ctx: OrgContext, delivery_id: UUID, reason: str | None = None,
    ) -> DeliveryInfo:
        with self._uow.transaction(
            ctx, "cancel_delivery", delivery_id=str(delivery_id),
        ) as kernel:
            return kernel.deliveries.cancel(ctx, delivery_id, reason)

    # ------------------------------------------------------------------
    # Resolutions
    # ------------------------------------------------------------------

    def start_resolution(
        self, ctx: OrgContext, resolution_id: UUID, resolution_type: str | ResolutionType,
    ) -> ResolutionInfo:
        chosen = ResolutionType(resolution_type)
        with self._uow.transaction(
            ctx, "start_resolution", resolution_id=str(resolution_id),
        ) as kernel:
            return kernel.resolutions.start(ctx, resolution_id, chosen)

    def process_re_import(
        self,
        ctx: OrgContext,
        resolution_id: UUID,
        storage_id: UUID,
        notes: str | None = None,
    ) -> ResolutionOutcome:
        with self._uow.transaction(
            ctx, "process_re_import", resolution_id=str(resolution_id),
        ) as kernel:
            outcome = kernel.resolutions.process_re_import(ctx, resolution_id, storage_id, notes)
            kernel.notify(
                Notification.inventory_sync(ctx.organization_id, outcome.product_ids),
                Notification.search_refresh(ctx.organization_id, "orders", [outcome.order_id]),
            )
            return outcome

    def process_return(
        self, ctx: OrgContext, resolution_id: UUID, reason: str,
    ) -> ResolutionOutcome:
        if not reason or not reason.strip():
            raise MissingFieldError("reason")
        with self._uow.transaction(
            ctx, "process_return", resolution_id=str(resolution_id),
        ) as kernel:
            outcome = kernel.resolutions.process_return(ctx, resolution_id, reason)
            kernel.notify(
                Notification.inventory_sync(ctx.organization_id, outcome.product_ids),
                Notification.refund_requested(
                    ctx.organization_id, outcome.order_id, resolution_id,
                ),
            )
            return outcome

    def process_retry(
        self,
        ctx: OrgContext,
        resolution_id: UUID,
        scheduled_date: date | None,
        shipper: ShipperInfo | None = None,
        notes: str | None = None,
    ) -> ResolutionOutcome:
        if shipper is not None and (not shipper.name or not shipper.name.strip()):
            raise MissingFieldError("shipper.name")
        with self._uow.transaction(
            ctx, "process_retry", resolution_id=str(resolution_id),
        ) as kernel:
            outcome = kernel.resolutions.process_retry(
                ctx, resolution_id, scheduled_date, shipper, notes,
            )
            kernel.notify(Notification.search_refresh(
                ctx.organization_id, "orders", [outcome.order_id],
            ))
            return outcome

    # ------------------------------------------------------------------
    # Storage administration
    # ------------------------------------------------------------------

    def create_storage(
        self,
        ctx: OrgContext,
        name: str,
        capacity: int,
        location: str | None = None,
        priority: int = 0,
    ) -> StorageInfo:
        if capacity < 0:
            raise InvalidQuantityError("capacity", capacity, minimum=0)
        with self._uow.transaction(ctx, "create_storage") as kernel:
            return kernel.ledger.create_storage(ctx, name, capacity, location, priority)

    def update_storage(
        self,
        ctx: OrgContext,
        storage_id: UUID,
        *,
        name: str | None = None,
        location: str | None = None,
        capacity: int | None = None,
        priority: int | None = None,
    ) -> StorageInfo:
        if capacity is not None and capacity < 0:
            raise InvalidQuantityError("capacity", capacity, minimum=0)
        with self._uow.transaction(ctx, "update_storage") as kernel:
            return kernel.ledger.update_storage(
                ctx, storage_id,
                name=name, location=location, capacity=capacity, priority=priority,
            )

    def delete_storage(self, ctx: OrgContext, storage_id: UUID) -> None:
        with self._uow.transaction(ctx, "delete_storage") as kernel:
            kernel.ledger.delete_storage(ctx, storage_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_item(self, ctx: OrgContext, raw_code: str) -> ShipmentItemInfo:
        value = self.parse_code(raw_code)
        with self._uow.transaction(ctx, "get_item") as kernel:
            return kernel.inventory.item_by_code(ctx, value)

    def shipment_items(self, ctx: OrgContext, shipment_id: UUID) -> list[ShipmentItemInfo]:
        with self._uow.transaction(ctx, "shipment_items") as kernel:
            return kernel.inventory.shipment_items(ctx, shipment_id)

    def scan_progress(self, ctx: OrgContext, shipment_id: UUID) -> ScanProgress:
        with self._uow.transaction(ctx, "scan_progress") as kernel:
            return kernel.inventory.scan_progress(ctx, shipment_id)

    def list_storages(self, ctx: OrgContext) -> list[StorageInfo]:
        with self._uow.transaction(ctx, "list_storages") as kernel:
            return kernel.inventory.list_storages(ctx)

    def storage_metrics(self, ctx: OrgContext) -> StorageMetrics:
        with self._uow.transaction(ctx, "storage_metrics") as kernel:
            return kernel.inventory.storage_metrics(ctx)

    def occupancy(self, ctx: OrgContext) -> list[OccupancyRow]:
        with self._uow.transaction(ctx, "occupancy") as kernel:
            return kernel.inventory.occupancy(ctx)

    def capacity_audit(self, ctx: OrgContext) -> list[OccupancyRow]:
        with self._uow.transaction(ctx, "capacity_audit") as kernel:
            rows = kernel.inventory.capacity_audit(ctx)
        if rows:
            logger.warning(
                "capacity_audit_mismatch",
                extra={"storage_ids": [str(r.storage_id) for r in rows]},
            )
        return rows

    def pool_stats(self, ctx: OrgContext) -> PoolStats:
        with self._uow.transaction(ctx, "pool_stats") as kernel:
            return kernel.inventory.pool_stats(ctx)

    def pool_batches(self, ctx: OrgContext) -> list[PoolBatch]:
        with self._uow.transaction(ctx, "pool_batches") as kernel:
            return kernel.inventory.pool_batches(ctx)

    def get_order(self, ctx: OrgContext, order_id: UUID) -> OrderInfo:
        with self._uow.transaction(ctx, "get_order") as kernel:
            return kernel.orders.order(ctx, order_id)

    def order_lines(
        self, ctx: OrgContext, order_id: UUID, status: OrderLineStatus | None = None,
    ) -> list[FulfilledLine]:
        with self._uow.transaction(ctx, "order_lines") as kernel:
            return kernel.orders.lines(ctx, order_id, status)

    def fulfilled_lines(self, ctx: OrgContext, order_id: UUID) -> list[FulfilledLine]:
        with self._uow.transaction(ctx, "fulfilled_lines") as kernel:
            return kernel.orders.fulfilled_lines(ctx, order_id)

    def get_delivery(self, ctx: OrgContext, delivery_id: UUID) -> DeliveryInfo:
        with self._uow.transaction(ctx, "get_delivery") as kernel:
            return kernel.delivery_view.delivery(ctx, delivery_id)

    def deliveries_for_order(self, ctx: OrgContext, order_id: UUID) -> list[DeliveryInfo]:
        with self._uow.transaction(ctx, "deliveries_for_order") as kernel:
            return kernel.delivery_view.deliveries_for_order(ctx, order_id)

    def delivery_history(self, ctx: OrgContext, delivery_id: UUID) -> list[HistoryEntry]:
        with self._uow.transaction(ctx, "delivery_history") as kernel:
            return kernel.delivery_view.history(ctx, delivery_id)

    def delivery_stats(self, ctx: OrgContext) -> DeliveryStats:
        with self._uow.transaction(ctx, "delivery_stats") as kernel:
            return kernel.delivery_view.stats(ctx)

    def get_resolution(self, ctx: OrgContext, resolution_id: UUID) -> ResolutionInfo:
        with self._uow.transaction(ctx, "get_resolution") as kernel:
            return kernel.delivery_view.resolution(ctx, resolution_id)

    def open_resolution(self, ctx: OrgContext, delivery_id: UUID) -> ResolutionInfo | None:
        with self._uow.transaction(ctx, "open_resolution") as kernel:
            return kernel.delivery_view.open_resolution(ctx, delivery_id)
