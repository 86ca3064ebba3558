"""
Module: inventory_kernel.models.storage
Responsibility: ORM persistence for storage locations and their capacity
    counters.
Architecture position: Kernel > Models.  May import from db/base.py and
    db/types.py only.

Invariants enforced:
    - 0 <= used_capacity <= capacity (CHECK constraints; the Capacity Ledger
      enforces the same bound before flush and reports the deficit).
    - Storage names are unique within an organization.

Audit relevance:
    used_capacity is the single authoritative occupancy counter.  Reporting
    code derives other figures from it or from item rows, never writes a
    second counter.
"""

from sqlalchemy import CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import OrgScopedBase
from inventory_kernel.db.types import Name


class Storage(OrgScopedBase):
    """
    A physical location with bounded capacity.

    Guarantees:
        - used_capacity only changes through CapacityLedger.admit/release.
        - priority only orders listings for destination pickers.
    """

    __tablename__ = "storages"

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_storage_org_name"),
        CheckConstraint("capacity >= 0", name="ck_storage_capacity_nonnegative"),
        CheckConstraint("used_capacity >= 0", name="ck_storage_used_nonnegative"),
        CheckConstraint("used_capacity <= capacity", name="ck_storage_used_within_capacity"),
    )

    name: Mapped[Name]
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    capacity: Mapped[int] = mapped_column(nullable=False)
    used_capacity: Mapped[int] = mapped_column(default=0, nullable=False)
    priority: Mapped[int] = mapped_column(default=0, nullable=False)

    @property
    def available_capacity(self) -> int:
        return self.capacity - self.used_capacity

    def __repr__(self) -> str:
        return f"<Storage {self.name} {self.used_capacity}/{self.capacity}>"
