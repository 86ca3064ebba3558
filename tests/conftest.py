"""
Pytest fixtures for the inventory test suite.

Provides:
- Structured logging fixtures and ``captured_logs``
- An in-memory SQLite database per test (StaticPool, one shared connection)
- A DeterministicClock, an org context and a seeded code generator
- ``kernel``: services and selectors on one open session
- ``operations``: the WarehouseOperations facade with a recording dispatcher

Environment Variables:
- INVENTORY_TEST_DATABASE_URL: PostgreSQL URL for tests marked ``postgres``.
  Those tests are skipped when it is unset.
"""

import json
import logging
import os
from datetime import date, datetime
from io import StringIO
from random import Random
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import inventory_kernel.models  # noqa: F401
from inventory_config import DatabaseConfig, InventoryConfig
from inventory_kernel.db.base import Base
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.codes import default_format_chain
from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.dtos import RequestedLine, ShipmentLine, ShipperInfo
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_services.notifications import NotificationDispatcher
from inventory_services.unit_of_work import KernelServices
from inventory_services.warehouse_operations import WarehouseOperations

TEST_DATABASE_URL_ENV = "INVENTORY_TEST_DATABASE_URL"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, operations):
            operations.scan_item(...)
            logs = captured_logs()
            assert any(r["message"] == "item_scanned" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    if os.environ.get(TEST_DATABASE_URL_ENV):
        return
    skip = pytest.mark.skip(reason=f"{TEST_DATABASE_URL_ENV} not set")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory database with all tables and immutability listeners."""
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    register_immutability_listeners()
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2026, 2, 1, 12, 0, 0))


@pytest.fixture
def org_id() -> UUID:
    return uuid4()


@pytest.fixture
def actor_id() -> UUID:
    return uuid4()


@pytest.fixture
def ctx(org_id, actor_id) -> OrgContext:
    return OrgContext(organization_id=org_id, actor_id=actor_id)


@pytest.fixture
def config() -> InventoryConfig:
    return InventoryConfig(
        config_id="test",
        version=1,
        database=DatabaseConfig(url="sqlite://"),
    )


@pytest.fixture
def formats(config):
    return default_format_chain(config.codes.current_format, config.codes.length)


@pytest.fixture
def kernel(session, clock, config, formats) -> KernelServices:
    """Kernel services on one open session; nothing is committed."""
    return KernelServices.build(session, clock, config, formats, rng=Random(42))


# =============================================================================
# Facade fixtures
# =============================================================================


class RecordingCollaborator:
    """Stands in for every downstream port and records each call."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()

    def _record(self, name: str, *args) -> None:
        if name in self.fail_on:
            raise RuntimeError(f"{name} unavailable")
        self.calls.append((name, *args))

    def queue_sync(self, organization_id, product_ids):
        self._record("queue_sync", organization_id, tuple(product_ids))

    def refresh(self, organization_id, entity, ids):
        self._record("refresh", organization_id, entity, tuple(ids))

    def fulfillment_created(self, organization_id, order_id):
        self._record("fulfillment_created", organization_id, order_id)

    def delivery_completed(self, organization_id, order_id, delivery_id):
        self._record("delivery_completed", organization_id, order_id, delivery_id)

    def refund_requested(self, organization_id, order_id, resolution_id):
        self._record("refund_requested", organization_id, order_id, resolution_id)

    def named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def collaborator() -> RecordingCollaborator:
    return RecordingCollaborator()


@pytest.fixture
def operations(session_factory, config, clock, collaborator) -> WarehouseOperations:
    dispatcher = NotificationDispatcher(
        inventory_sync=collaborator,
        search_index=collaborator,
        order_channel=collaborator,
    )
    return WarehouseOperations(
        session_factory, config, clock=clock, dispatcher=dispatcher, rng=Random(7),
    )


class WarehouseBuilder:
    """Builds common warehouse states through the facade."""

    def __init__(self, operations: WarehouseOperations, ctx: OrgContext, clock):
        self.ops = operations
        self.ctx = ctx
        self.clock = clock
        self._receipts = 0
        self._orders = 0

    def storage(self, capacity: int = 10, name: str | None = None, priority: int = 0):
        return self.ops.create_storage(
            self.ctx, name or f"Shelf-{uuid4().hex[:6]}", capacity, priority=priority,
        )

    def shipment(self, *lines: tuple[UUID, int]):
        self._receipts += 1
        return self.ops.create_shipment(
            self.ctx,
            f"RCPT-{self._receipts:04d}",
            date(2026, 1, 15),
            "Acme Supply",
            [ShipmentLine(product_id=p, quantity=q) for p, q in lines],
        )

    def received(self, storage_id: UUID, *lines: tuple[UUID, int]):
        """Shipment whose units are scanned one by one, one second apart."""
        record = self.shipment(*lines)
        for code in record.codes:
            self.clock.advance(1)
            self.ops.scan_item(self.ctx, code, storage_id)
        return record

    def order(self, **kwargs):
        self._orders += 1
        return self.ops.register_order(self.ctx, f"ORD-{self._orders:04d}", **kwargs)

    def sold(self, storage_id: UUID, product_id: UUID, quantity: int = 1, price: int = 100):
        """An order fulfilled from freshly received stock."""
        self.received(storage_id, (product_id, quantity))
        order = self.order(customer_id=uuid4())
        self.ops.fulfill_order(
            self.ctx, order.order_id, [RequestedLine(product_id, quantity, price)],
        )
        return order

    def failed_delivery(self, storage_id: UUID, product_id: UUID, quantity: int = 1):
        """A sold order whose only delivery attempt failed."""
        order = self.sold(storage_id, product_id, quantity)
        delivery = self.ops.create_delivery(
            self.ctx, order.order_id, ShipperInfo("FastShip", "555-0100", "TRK-1"),
        )
        self.clock.advance(60)
        failure = self.ops.mark_failed(
            self.ctx, delivery.delivery_id, "Nobody home", "customer_unavailable",
        )
        return order, failure


@pytest.fixture
def warehouse(operations, ctx, clock) -> WarehouseBuilder:
    return WarehouseBuilder(operations, ctx, clock)
