"""
CapacityLedger -- sole authority for storage admission and release.

Responsibility:
    Maintains each storage location's ``used_capacity`` counter.  Every
    admission checks ``used + count <= capacity`` against a row locked with
    SELECT ... FOR UPDATE, so two concurrent scans can never both pass the
    check on a stale read.  Also owns storage administration (create,
    update, delete), since each of those must respect the same bound.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  Called by
    ShipmentItemService, FulfillmentService and ResolutionService inside the
    same transaction as the item status change each admission accompanies.

Invariants enforced:
    - 0 <= used_capacity <= capacity for every storage, at every flush.
    - Bulk admission is sized on the whole batch: all or nothing.
    - Multiple storages are locked in ascending id order.
    - A storage is deleted only when used_capacity == 0.

Failure modes:
    - StorageNotFoundError: unknown storage (or one owned by another
      organization).
    - CapacityExceededError / InsufficientCapacityError: admission does not
      fit; carries the deficit.
    - CapacityUnderflowError: a release larger than current usage.
    - CapacityBelowUsageError, StorageNotEmptyError: administration limits.
"""

from collections.abc import Mapping
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import StorageInfo
from inventory_kernel.exceptions import (
    CapacityBelowUsageError,
    CapacityExceededError,
    CapacityUnderflowError,
    InsufficientCapacityError,
    InvalidQuantityError,
    MissingFieldError,
    StorageNotEmptyError,
    StorageNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.storage import Storage
from inventory_kernel.services.base import BaseService

logger = get_logger("services.capacity")


class CapacityLedger(BaseService[Storage]):
    """
    Admission control for storage locations.

    Contract:
        ``admit`` and ``release`` run inside the caller's transaction.  The
        caller applies the matching ShipmentItem status change before the
        unit of work commits; both halves are committed together or not at
        all.

    Guarantees:
        - Storage rows are read with FOR UPDATE and populate_existing, so a
          stale identity-map copy never feeds the capacity check.
    """

    def lock(self, ctx: OrgContext, storage_id: UUID) -> Storage:
        """Load and row-lock one storage of the caller's organization."""
        storage = self.session.execute(
            select(Storage)
            .where(
                Storage.id == storage_id,
                Storage.organization_id == ctx.organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if storage is None:
            raise StorageNotFoundError(str(storage_id))
        return storage

    def admit(
        self,
        ctx: OrgContext,
        storage_id: UUID,
        count: int,
        *,
        bulk: bool = False,
    ) -> Storage:
        """
        Reserve ``count`` slots in a storage.

        Raises:
            CapacityExceededError: the units do not fit (bulk admissions raise
                the InsufficientCapacityError subclass).
        """
        if count < 1:
            raise InvalidQuantityError("count", count, minimum=1)
        storage = self.lock(ctx, storage_id)
        available = storage.capacity - storage.used_capacity
        if count > available:
            logger.warning(
                "capacity_admission_rejected",
                extra={
                    "storage_id": str(storage_id),
                    "requested": count,
                    "available": available,
                    "bulk": bulk,
                },
            )
            error_cls = InsufficientCapacityError if bulk else CapacityExceededError
            raise error_cls(str(storage_id), count, available)

        storage.used_capacity += count
        storage.updated_by_id = ctx.actor_id
        self.session.flush()
        logger.info(
            "capacity_admitted",
            extra={
                "storage_id": str(storage_id),
                "count": count,
                "used_capacity": storage.used_capacity,
                "capacity": storage.capacity,
            },
        )
        return storage

    def release(self, ctx: OrgContext, storage_id: UUID, count: int) -> Storage:
        """Return ``count`` slots previously admitted for the same units."""
        if count < 1:
            raise InvalidQuantityError("count", count, minimum=1)
        storage = self.lock(ctx, storage_id)
        if count > storage.used_capacity:
            raise CapacityUnderflowError(str(storage_id), count, storage.used_capacity)

        storage.used_capacity -= count
        storage.updated_by_id = ctx.actor_id
        self.session.flush()
        logger.info(
            "capacity_released",
            extra={
                "storage_id": str(storage_id),
                "count": count,
                "used_capacity": storage.used_capacity,
            },
        )
        return storage

    def release_many(self, ctx: OrgContext, counts: Mapping[UUID, int]) -> None:
        """Release per storage, locking rows in ascending id order."""
        for storage_id in sorted(counts, key=str):
            if counts[storage_id]:
                self.release(ctx, storage_id, counts[storage_id])

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def create_storage(
        self,
        ctx: OrgContext,
        name: str,
        capacity: int,
        location: str | None = None,
        priority: int = 0,
    ) -> StorageInfo:
        if not name or not name.strip():
            raise MissingFieldError("name")
        if capacity < 0:
            raise InvalidQuantityError("capacity", capacity, minimum=0)

        storage = Storage(
            organization_id=ctx.organization_id,
            name=name.strip(),
            location=location,
            capacity=capacity,
            used_capacity=0,
            priority=priority,
            created_by_id=ctx.actor_id,
        )
        self.session.add(storage)
        self.session.flush()
        logger.info(
            "storage_created",
            extra={"storage_id": str(storage.id), "capacity": capacity},
        )
        return StorageInfo.from_model(storage)

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
        storage = self.lock(ctx, storage_id)
        if capacity is not None:
            if capacity < storage.used_capacity:
                raise CapacityBelowUsageError(
                    str(storage_id), capacity, storage.used_capacity,
                )
            storage.capacity = capacity
        if name is not None:
            if not name.strip():
                raise MissingFieldError("name")
            storage.name = name.strip()
        if location is not None:
            storage.location = location
        if priority is not None:
            storage.priority = priority
        storage.updated_by_id = ctx.actor_id
        self.session.flush()
        logger.info("storage_updated", extra={"storage_id": str(storage_id)})
        return StorageInfo.from_model(storage)

    def delete_storage(self, ctx: OrgContext, storage_id: UUID) -> None:
        storage = self.lock(ctx, storage_id)
        if storage.used_capacity != 0:
            raise StorageNotEmptyError(str(storage_id), storage.used_capacity)
        self.session.delete(storage)
        self.session.flush()
        logger.info("storage_deleted", extra={"storage_id": str(storage_id)})
