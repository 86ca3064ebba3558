"""
Declarative bases for the inventory tables.

Every table gets a uuid4 primary key stored as String(36), so the same
models run on PostgreSQL and on the in-memory SQLite used by tests.
Warehouse rows (codes, items, storages, orders, deliveries) derive from
OrgScopedBase: they carry the tenant namespace and who created or last
changed them.  Append-only rows (history, supplier returns) derive from
Base directly and keep their own timestamp.

MUST NOT import from models/, services/, selectors/ or domain/.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """uuid.UUID in Python, String(36) in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds creation and last-change stamps; services fill the actor columns."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(),
    )
    created_by_id: Mapped[UUID] = mapped_column()
    updated_by_id: Mapped[UUID | None] = mapped_column()


class OrgScopedBase(TrackedBase):
    """Row owned by one organization; queries always filter on it."""

    __abstract__ = True

    organization_id: Mapped[UUID] = mapped_column(index=True)
