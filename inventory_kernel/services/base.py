"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every write
    service in the kernel.  Services receive a SQLAlchemy ``Session`` and a
    ``Clock`` and persist through ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell.  The unit of work in
    ``inventory_services`` owns commit and rollback, so a status change and
    its capacity effect are always committed (or discarded) together.

Failure modes:
    - A subclass that commits breaks the single-transaction-per-use-case
      guarantee (an admitted unit and its counter could be observed apart).
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base
from inventory_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
        - All timestamps come from ``self.clock``.

    Non-goals:
        - Read-only queries for reporting belong in ``selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
