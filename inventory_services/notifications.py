"""
Outbound notifications to downstream collaborators.

Contract:
    Operations record Notification values in their unit of work's outbox.
    The dispatcher delivers them only after the transaction commits.  A
    collaborator failure is logged at WARNING and never reaches the caller:
    the committed warehouse state is authoritative and downstream systems
    reconcile from it.

Collaborators:
    InventorySyncPort -- per-product stock counts in sales channels.
    SearchIndexPort   -- search documents for shipments, items and orders.
    OrderChannelPort  -- invoicing and refunds on the order side.

The default implementations log the call and do nothing else.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable
from uuid import UUID

from inventory_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationKind(str, Enum):
    INVENTORY_SYNC = "inventory_sync"
    SEARCH_REFRESH = "search_refresh"
    FULFILLMENT_CREATED = "fulfillment_created"
    DELIVERY_COMPLETED = "delivery_completed"
    REFUND_REQUESTED = "refund_requested"


@dataclass(frozen=True)
class Notification:
    """One post-commit message; which fields are set depends on ``kind``."""

    kind: NotificationKind
    organization_id: UUID
    product_ids: tuple[UUID, ...] = ()
    entity: str | None = None
    entity_ids: tuple[UUID, ...] = ()
    order_id: UUID | None = None
    reference_id: UUID | None = None

    @classmethod
    def inventory_sync(cls, organization_id: UUID, product_ids: Iterable[UUID]) -> Notification:
        return cls(
            NotificationKind.INVENTORY_SYNC,
            organization_id,
            product_ids=tuple(sorted(set(product_ids), key=str)),
        )

    @classmethod
    def search_refresh(
        cls, organization_id: UUID, entity: str, ids: Iterable[UUID],
    ) -> Notification:
        return cls(
            NotificationKind.SEARCH_REFRESH,
            organization_id,
            entity=entity,
            entity_ids=tuple(ids),
        )

    @classmethod
    def fulfillment_created(cls, organization_id: UUID, order_id: UUID) -> Notification:
        return cls(NotificationKind.FULFILLMENT_CREATED, organization_id, order_id=order_id)

    @classmethod
    def delivery_completed(
        cls, organization_id: UUID, order_id: UUID, delivery_id: UUID,
    ) -> Notification:
        return cls(
            NotificationKind.DELIVERY_COMPLETED,
            organization_id,
            order_id=order_id,
            reference_id=delivery_id,
        )

    @classmethod
    def refund_requested(
        cls, organization_id: UUID, order_id: UUID, resolution_id: UUID,
    ) -> Notification:
        return cls(
            NotificationKind.REFUND_REQUESTED,
            organization_id,
            order_id=order_id,
            reference_id=resolution_id,
        )


# ---------------------------------------------------------------------------
# Collaborator ports
# ---------------------------------------------------------------------------


@runtime_checkable
class InventorySyncPort(Protocol):
    def queue_sync(self, organization_id: UUID, product_ids: Sequence[UUID]) -> None:
        """Schedule a stock-count refresh for the given products."""
        ...


@runtime_checkable
class SearchIndexPort(Protocol):
    def refresh(self, organization_id: UUID, entity: str, ids: Sequence[UUID]) -> None:
        ...


@runtime_checkable
class OrderChannelPort(Protocol):
    def fulfillment_created(self, organization_id: UUID, order_id: UUID) -> None:
        ...

    def delivery_completed(
        self, organization_id: UUID, order_id: UUID, delivery_id: UUID,
    ) -> None:
        ...

    def refund_requested(
        self, organization_id: UUID, order_id: UUID, resolution_id: UUID,
    ) -> None:
        ...


class LoggingInventorySync:
    def queue_sync(self, organization_id: UUID, product_ids: Sequence[UUID]) -> None:
        logger.info(
            "inventory_sync_queued",
            extra={
                "organization_id": str(organization_id),
                "product_ids": [str(p) for p in product_ids],
            },
        )


class LoggingSearchIndex:
    def refresh(self, organization_id: UUID, entity: str, ids: Sequence[UUID]) -> None:
        logger.info(
            "search_refresh_requested",
            extra={"organization_id": str(organization_id), "entity": entity, "count": len(ids)},
        )


class LoggingOrderChannel:
    def fulfillment_created(self, organization_id: UUID, order_id: UUID) -> None:
        logger.info("order_fulfillment_notified", extra={"order_id": str(order_id)})

    def delivery_completed(
        self, organization_id: UUID, order_id: UUID, delivery_id: UUID,
    ) -> None:
        logger.info(
            "order_delivery_notified",
            extra={"order_id": str(order_id), "delivery_id": str(delivery_id)},
        )

    def refund_requested(
        self, organization_id: UUID, order_id: UUID, resolution_id: UUID,
    ) -> None:
        logger.info(
            "order_refund_requested",
            extra={"order_id": str(order_id), "resolution_id": str(resolution_id)},
        )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


@dataclass
class NotificationDispatcher:
    """Routes committed notifications to their collaborator, best effort."""

    inventory_sync: InventorySyncPort = field(default_factory=LoggingInventorySync)
    search_index: SearchIndexPort = field(default_factory=LoggingSearchIndex)
    order_channel: OrderChannelPort = field(default_factory=LoggingOrderChannel)

    def dispatch(self, notifications: Iterable[Notification]) -> int:
        """Deliver each notification; returns how many were delivered."""
        delivered = 0
        for notification in notifications:
            try:
                self._deliver(notification)
            except Exception:
                logger.warning(
                    "notification_failed",
                    extra={
                        "kind": notification.kind.value,
                        "order_id": str(notification.order_id) if notification.order_id else None,
                    },
                    exc_info=True,
                )
            else:
                delivered += 1
        return delivered

    def _deliver(self, n: Notification) -> None:
        if n.kind is NotificationKind.INVENTORY_SYNC:
            if n.product_ids:
                self.inventory_sync.queue_sync(n.organization_id, n.product_ids)
        elif n.kind is NotificationKind.SEARCH_REFRESH:
            if n.entity_ids:
                self.search_index.refresh(n.organization_id, n.entity, n.entity_ids)
        elif n.kind is NotificationKind.FULFILLMENT_CREATED:
            self.order_channel.fulfillment_created(n.organization_id, n.order_id)
        elif n.kind is NotificationKind.DELIVERY_COMPLETED:
            self.order_channel.delivery_completed(n.organization_id, n.order_id, n.reference_id)
        elif n.kind is NotificationKind.REFUND_REQUESTED:
            self.order_channel.refund_requested(n.organization_id, n.order_id, n.reference_id)
