"""
UnitOfWork -- one database transaction per use case.

Responsibility:
    Opens a session, wires the kernel services onto it, commits or rolls
    back, and dispatches the operation's notifications after a successful
    commit.  Binds the correlation id, tenant, actor and operation name to
    every log line emitted inside the transaction.

Architecture position:
    Services -- the only layer that commits.  Kernel services flush.

Failure modes:
    - Unique-constraint races, serialization failures and deadlocks are
      rolled back and raised as ConcurrencyConflictError.  The caller may
      retry the whole operation; the unit of work never does.
    - Every other exception is rolled back and re-raised unchanged.
    - Notifications are discarded when the transaction does not commit.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from random import Random
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from inventory_config import InventoryConfig
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.codes import CodeFormatChain
from inventory_kernel.domain.context import OrgContext
from inventory_kernel.exceptions import ConcurrencyConflictError, InventoryKernelError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors import DeliverySelector, InventorySelector, OrderSelector
from inventory_kernel.services import (
    CapacityLedger,
    CodeAllocator,
    DeliveryService,
    FulfillmentService,
    ResolutionService,
    ShipmentItemService,
)
from inventory_services.notifications import Notification, NotificationDispatcher

logger = get_logger("services.unit_of_work")

_UNIQUE_VIOLATION = "23505"
_RETRYABLE_PGCODES = frozenset({"40001", "40P01"})


def is_unique_violation(exc: IntegrityError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode is not None:
        return pgcode == _UNIQUE_VIOLATION
    return "unique" in str(exc.orig).lower()


def is_retryable_conflict(exc: OperationalError) -> bool:
    """Serialization failure or deadlock (PostgreSQL), or a locked SQLite file."""
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode is not None:
        return pgcode in _RETRYABLE_PGCODES
    return "locked" in str(exc.orig).lower()


@dataclass
class KernelServices:
    """Kernel services and selectors sharing one session, plus the outbox."""

    session: Session
    ledger: CapacityLedger
    allocator: CodeAllocator
    items: ShipmentItemService
    fulfillment: FulfillmentService
    deliveries: DeliveryService
    resolutions: ResolutionService
    inventory: InventorySelector
    delivery_view: DeliverySelector
    orders: OrderSelector
    outbox: list[Notification] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        session: Session,
        clock: Clock,
        config: InventoryConfig,
        formats: CodeFormatChain,
        rng: Random | None = None,
    ) -> KernelServices:
        ledger = CapacityLedger(session, clock)
        allocator = CodeAllocator(
            session,
            clock,
            formats=formats,
            rng=rng,
            attempt_factor=config.codes.attempt_factor,
            max_batch_size=config.codes.max_batch_size,
        )
        items = ShipmentItemService(
            session, clock, ledger, allocator,
            default_warranty_months=config.warranty.default_months,
        )
        deliveries = DeliveryService(session, clock)
        return cls(
            session=session,
            ledger=ledger,
            allocator=allocator,
            items=items,
            fulfillment=FulfillmentService(session, clock, items, ledger),
            deliveries=deliveries,
            resolutions=ResolutionService(session, clock, items, deliveries),
            inventory=InventorySelector(session),
            delivery_view=DeliverySelector(session),
            orders=OrderSelector(session),
        )

    def notify(self, *notifications: Notification) -> None:
        self.outbox.extend(notifications)


class UnitOfWork:
    """
    Transaction boundary for facade operations.

    Usage:
        with uow.transaction(ctx, "scan_item") as kernel:
            result = kernel.items.scan(ctx, code, storage_id)
            kernel.notify(...)
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock,
        config: InventoryConfig,
        formats: CodeFormatChain,
        dispatcher: NotificationDispatcher,
        rng: Random | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._config = config
        self._formats = formats
        self._dispatcher = dispatcher
        self._rng = rng

    @contextmanager
    def transaction(
        self, ctx: OrgContext, operation: str, **log_fields: str | None,
    ) -> Iterator[KernelServices]:
        t0 = time.monotonic()
        with LogContext.bind(
            correlation_id=str(uuid4()),
            organization_id=str(ctx.organization_id),
            actor_id=str(ctx.actor_id),
            operation=operation,
            **log_fields,
        ):
            session = self._session_factory()
            kernel = KernelServices.build(
                session, self._clock, self._config, self._formats, self._rng,
            )
            try:
                yield kernel
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                if is_unique_violation(exc):
                    logger.warning("operation_conflict", extra={"detail": str(exc.orig)})
                    raise ConcurrencyConflictError(operation, str(exc.orig)) from exc
                logger.error("operation_failed", exc_info=True)
                raise
            except OperationalError as exc:
                session.rollback()
                if is_retryable_conflict(exc):
                    logger.warning("operation_conflict", extra={"detail": str(exc.orig)})
                    raise ConcurrencyConflictError(operation, str(exc.orig)) from exc
                logger.error("operation_failed", exc_info=True)
                raise
            except InventoryKernelError as exc:
                session.rollback()
                logger.info(
                    "operation_rejected",
                    extra={
                        "error_code": exc.code,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                raise
            except Exception:
                session.rollback()
                logger.error(
                    "operation_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise
            finally:
                session.close()

            logger.info(
                "operation_completed",
                extra={
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    "notifications": len(kernel.outbox),
                },
            )
            if kernel.outbox:
                self._dispatcher.dispatch(kernel.outbox)
