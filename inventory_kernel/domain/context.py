"""
OrgContext -- explicit tenant and actor for every kernel call.

Every service, selector and facade operation takes an ``OrgContext`` as its
first argument.  The kernel never reads the tenant from a request, a
session cookie or any other ambient state.
"""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class OrgContext:
    """Organization namespace and acting user for one operation."""

    organization_id: UUID
    actor_id: UUID

    def log_fields(self) -> dict[str, str]:
        return {
            "organization_id": str(self.organization_id),
            "actor_id": str(self.actor_id),
        }
