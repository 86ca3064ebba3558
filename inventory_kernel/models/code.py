"""
Module: inventory_kernel.models.code
Responsibility: ORM persistence for allocated unit codes, both per-item
    (immediate) and pre-generated pool batches.
Architecture position: Kernel > Models.

Invariants enforced:
    - (organization_id, value) is unique: a code is never issued twice in a
      namespace, whatever its format or mode.
    - Codes are never deleted (db/immutability.py).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import OrgScopedBase, UUIDString
from inventory_kernel.db.types import CodeValue, StatusString
from inventory_kernel.domain.lifecycle import AllocationMode, CodeStatus


class Code(OrgScopedBase):
    """
    One identifier stamped (or to be stamped) on a physical unit.

    Guarantees:
        - status moves available -> used exactly once (CodeAllocator.claim or
          immediate binding at shipment creation).
    """

    __tablename__ = "codes"

    __table_args__ = (
        UniqueConstraint("organization_id", "value", name="uq_code_org_value"),
        Index("idx_code_org_batch", "organization_id", "batch_id"),
        Index("idx_code_org_status", "organization_id", "status"),
    )

    value: Mapped[CodeValue]
    format_version: Mapped[str] = mapped_column(String(10), nullable=False)
    mode: Mapped[StatusString] = mapped_column(default=AllocationMode.POOLED.value)
    batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    generated_at: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[StatusString] = mapped_column(default=CodeStatus.AVAILABLE.value)
    used_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Code {self.value} {self.status}>"
