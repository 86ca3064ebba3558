"""Tests for the read side: storages, occupancy, code pool, deliveries, tenancy."""

from uuid import uuid4

import pytest
from sqlalchemy import update

from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.lifecycle import AllocationMode, DeliveryStatus
from inventory_kernel.exceptions import (
    DeliveryNotFoundError,
    ItemNotFoundError,
    OrderNotFoundError,
    ShipmentNotFoundError,
)
from inventory_kernel.models.storage import Storage


@pytest.fixture
def stranger(ctx) -> OrgContext:
    return OrgContext(organization_id=uuid4(), actor_id=ctx.actor_id)


class TestStorages:

    def test_listing_order(self, warehouse, operations, ctx):
        warehouse.storage(name="Bravo", priority=1)
        warehouse.storage(name="Alpha", priority=1)
        warehouse.storage(name="Attic", priority=0)
        warehouse.storage(name="Dock", priority=5)
        names = [s.name for s in operations.list_storages(ctx)]
        assert names == ["Dock", "Alpha", "Bravo", "Attic"]

    def test_metrics(self, warehouse, operations, ctx):
        first = warehouse.storage(capacity=10)
        warehouse.storage(capacity=10)
        warehouse.received(first.storage_id, (uuid4(), 5))
        metrics = operations.storage_metrics(ctx)
        assert metrics.total_storages == 2
        assert metrics.total_capacity == 20
        assert metrics.total_used_capacity == 5
        assert metrics.utilization_rate == 25

    def test_metrics_without_storages(self, operations, ctx):
        metrics = operations.storage_metrics(ctx)
        assert (metrics.total_storages, metrics.total_capacity, metrics.utilization_rate) == (
            0, 0, 0,
        )

    def test_available(self, warehouse, operations, ctx):
        storage = warehouse.storage(capacity=4)
        warehouse.received(storage.storage_id, (uuid4(), 3))
        assert operations.list_storages(ctx)[0].available == 1


class TestOccupancy:

    def test_counter_matches_received_units(self, warehouse, operations, ctx):
        left = warehouse.storage(name="Left")
        right = warehouse.storage(name="Right")
        product = uuid4()
        warehouse.received(left.storage_id, (product, 3))
        warehouse.sold(right.storage_id, product, quantity=1)

        rows = {r.name: r for r in operations.occupancy(ctx)}
        assert (rows["Left"].used_capacity, rows["Left"].received_items) == (3, 3)
        assert (rows["Right"].used_capacity, rows["Right"].received_items) == (0, 0)
        assert operations.capacity_audit(ctx) == []

    def test_audit_reports_drift(
        self, warehouse, operations, ctx, session_factory, captured_logs,
    ):
        storage = warehouse.storage(capacity=5)
        warehouse.received(storage.storage_id, (uuid4(), 1))
        with session_factory() as session:
            session.execute(
                update(Storage).where(Storage.id == storage.storage_id).values(used_capacity=3)
            )
            session.commit()

        rows = operations.capacity_audit(ctx)
        assert [(r.used_capacity, r.received_items) for r in rows] == [(3, 1)]
        assert any(r["message"] == "capacity_audit_mismatch" for r in captured_logs())


class TestCodePool:

    def test_stats_count_pooled_codes_only(self, warehouse, operations, ctx):
        pool = operations.allocate_codes(ctx, 4)
        operations.allocate_codes(ctx, 2, mode=AllocationMode.IMMEDIATE)
        operations.claim_code(ctx, pool.values[0])
        stats = operations.pool_stats(ctx)
        assert (stats.available, stats.used, stats.total) == (3, 1, 4)

    def test_batches_newest_first(self, operations, ctx, clock):
        older = operations.allocate_codes(ctx, 3)
        clock.advance(60)
        newer = operations.allocate_codes(ctx, 2)
        operations.claim_code(ctx, newer.values[0])

        batches = operations.pool_batches(ctx)
        assert [b.batch_id for b in batches] == [newer.batch_id, older.batch_id]
        assert (batches[0].count, batches[0].available_count) == (2, 1)
        assert (batches[1].count, batches[1].available_count) == (3, 3)


class TestDeliveryStats:

    def test_counts_by_status_and_resolution(self, warehouse, operations, ctx):
        storage = warehouse.storage()
        warehouse.failed_delivery(storage.storage_id, uuid4())
        _, second = warehouse.failed_delivery(storage.storage_id, uuid4())
        operations.start_resolution(ctx, second.resolution.resolution_id, "re_import")

        stats = operations.delivery_stats(ctx)
        assert stats.by_status[DeliveryStatus.FAILED.value] == 2
        assert stats.by_status[DeliveryStatus.DELIVERED.value] == 0
        assert stats.total == 2
        assert stats.resolutions_by_type == {"unassigned": 1, "re_import": 1}
        assert stats.resolutions_by_status == {"pending": 1, "in_progress": 1}

    def test_empty(self, operations, ctx):
        stats = operations.delivery_stats(ctx)
        assert set(stats.by_status) == {s.value for s in DeliveryStatus}
        assert stats.total == 0
        assert stats.resolutions_by_type == {}


class TestTenancy:

    def test_other_organization_sees_nothing(self, warehouse, operations, ctx, stranger):
        storage = warehouse.storage()
        record = warehouse.received(storage.storage_id, (uuid4(), 2))
        order, failure = warehouse.failed_delivery(storage.storage_id, uuid4())

        assert operations.list_storages(stranger) == []
        assert operations.shipment_items(stranger, record.shipment_id) == []
        with pytest.raises(ItemNotFoundError):
            operations.get_item(stranger, record.codes[0])
        with pytest.raises(ShipmentNotFoundError):
            operations.scan_progress(stranger, record.shipment_id)
        with pytest.raises(OrderNotFoundError):
            operations.get_order(stranger, order.order_id)
        with pytest.raises(DeliveryNotFoundError):
            operations.get_delivery(stranger, failure.delivery.delivery_id)
        assert operations.delivery_stats(stranger).total == 0
