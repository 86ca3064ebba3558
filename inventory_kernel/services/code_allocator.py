"""
CodeAllocator -- collision-free code generation and atomic pool claims.

Responsibility:
    Generates batches of unique codes in the current format, persists them
    as Code rows, and consumes pooled codes one at a time for physical
    stamping.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - A code value is issued at most once per organization (collision check
      against every existing Code and ShipmentItem value, backed by the
      uq_code_org_value constraint for concurrent allocators).
    - A batch is persisted whole or not at all: GenerationExhaustedError is
      raised before anything is added to the session.
    - Claiming flips available -> used under a row lock; two stamping jobs
      can never claim the same code.

Failure modes:
    - InvalidQuantityError: batch size outside 1..max_batch_size.
    - GenerationExhaustedError: attempt budget (n x attempt_factor) spent.
    - CodeNotFoundError / CodeAlreadyUsedError: claim of an unknown or
      consumed code.
    - CodeAlreadyBoundError: pooled code already stamped on another item.
    - IntegrityError on flush when a concurrent allocator inserted the same
      value first (translated to ConcurrencyConflictError by the unit of
      work).
"""

from random import Random
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.codes import CodeFormatChain, default_format_chain, system_rng
from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import AllocatedCode, AllocationResult, ClaimResult
from inventory_kernel.domain.lifecycle import AllocationMode, CodeStatus
from inventory_kernel.exceptions import (
    CodeAlreadyBoundError,
    CodeAlreadyUsedError,
    CodeNotFoundError,
    GenerationExhaustedError,
    InvalidQuantityError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.code import Code
from inventory_kernel.models.shipment import ShipmentItem
from inventory_kernel.services.base import BaseService

logger = get_logger("services.codes")

_LOOKUP_CHUNK = 500


class CodeAllocator(BaseService[Code]):
    """
    Allocates codes in the current format and claims pooled codes.

    Contract:
        ``allocate`` returns exactly ``n`` new values or raises.  Immediate
        allocations are stored as ``used`` (the caller binds each to a new
        shipment item in the same transaction); pooled allocations are
        stored ``available`` under a fresh batch id.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        formats: CodeFormatChain | None = None,
        rng: Random | None = None,
        attempt_factor: int = 3,
        max_batch_size: int = 10_000,
    ):
        super().__init__(session, clock)
        self.formats = formats or default_format_chain()
        self._rng = rng or system_rng()
        self._attempt_factor = attempt_factor
        self._max_batch_size = max_batch_size

    def allocate(
        self,
        ctx: OrgContext,
        n: int,
        *,
        mode: AllocationMode = AllocationMode.POOLED,
        batch_id: UUID | None = None,
    ) -> AllocationResult:
        """Generate and persist ``n`` unique codes."""
        if n < 1 or n > self._max_batch_size:
            raise InvalidQuantityError("n", n, minimum=1, maximum=self._max_batch_size)

        values, attempts = self._generate_unique(ctx, n)
        now = self.clock.now()
        batch_id = batch_id or uuid4()
        status = CodeStatus.USED if mode is AllocationMode.IMMEDIATE else CodeStatus.AVAILABLE
        fmt = self.formats.current

        rows = [
            Code(
                organization_id=ctx.organization_id,
                value=value,
                format_version=fmt.version,
                mode=mode.value,
                batch_id=batch_id,
                generated_at=now,
                status=status.value,
                used_at=now if status is CodeStatus.USED else None,
                created_by_id=ctx.actor_id,
            )
            for value in values
        ]
        self.session.add_all(rows)
        self.session.flush()

        logger.info(
            "codes_allocated",
            extra={
                "batch_id": str(batch_id),
                "count": n,
                "attempts": attempts,
                "mode": mode.value,
                "format_version": fmt.version,
            },
        )
        return AllocationResult(
            batch_id=batch_id,
            codes=tuple(AllocatedCode.from_model(r) for r in rows),
            attempts=attempts,
        )

    def _generate_unique(self, ctx: OrgContext, n: int) -> tuple[list[str], int]:
        budget = n * self._attempt_factor
        fmt = self.formats.current
        accepted: list[str] = []
        seen: set[str] = set()
        attempts = 0

        while len(accepted) < n and attempts < budget:
            candidates: list[str] = []
            while len(candidates) < n - len(accepted) and attempts < budget:
                attempts += 1
                value = fmt.generate(self._rng)
                if value in seen:
                    continue
                seen.add(value)
                candidates.append(value)
            taken = self._existing_values(ctx, candidates)
            accepted.extend(v for v in candidates if v not in taken)

        if len(accepted) < n:
            logger.warning(
                "code_generation_exhausted",
                extra={"requested": n, "generated": len(accepted), "attempts": attempts},
            )
            raise GenerationExhaustedError(n, len(accepted), attempts)
        return accepted, attempts

    def _existing_values(self, ctx: OrgContext, candidates: list[str]) -> set[str]:
        """Values among ``candidates`` already present in the namespace."""
        taken: set[str] = set()
        for start in range(0, len(candidates), _LOOKUP_CHUNK):
            chunk = candidates[start:start + _LOOKUP_CHUNK]
            taken.update(self.session.scalars(
                select(Code.value).where(
                    Code.organization_id == ctx.organization_id,
                    Code.value.in_(chunk),
                )
            ))
            taken.update(self.session.scalars(
                select(ShipmentItem.code).where(
                    ShipmentItem.organization_id == ctx.organization_id,
                    ShipmentItem.code.in_(chunk),
                )
            ))
        return taken

    def _lock_code(self, ctx: OrgContext, value: str) -> Code:
        row = self.session.execute(
            select(Code)
            .where(Code.organization_id == ctx.organization_id, Code.value == value)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise CodeNotFoundError(value)
        return row

    def claim(self, ctx: OrgContext, value: str) -> ClaimResult:
        """Atomically mark one pooled code as used."""
        row = self._lock_code(ctx, value)
        if row.status == CodeStatus.USED:
            raise CodeAlreadyUsedError(value)
        row.status = CodeStatus.USED.value
        row.used_at = self.clock.now()
        row.updated_by_id = ctx.actor_id
        self.session.flush()
        logger.info("code_claimed", extra={"code": value, "batch_id": str(row.batch_id)})
        return ClaimResult(value=value, used_at=row.used_at)

    def bind_pooled(self, ctx: OrgContext, value: str) -> Code:
        """
        Reserve a pooled code for a new shipment item.

        A code still ``available`` is claimed here; one already claimed by a
        stamping job is accepted as long as no item carries it yet.
        """
        row = self._lock_code(ctx, value)
        if row.status == CodeStatus.AVAILABLE:
            row.status = CodeStatus.USED.value
            row.used_at = self.clock.now()
            row.updated_by_id = ctx.actor_id
        bound = self.session.scalar(
            select(ShipmentItem.id).where(
                ShipmentItem.organization_id == ctx.organization_id,
                ShipmentItem.code == value,
            )
        )
        if bound is not None:
            raise CodeAlreadyBoundError(value)
        return row
