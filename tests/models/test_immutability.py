"""Tests for append-only records, never-delete rows and table CHECK constraints."""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.dtos import ShipmentLine, ShipperInfo
from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.models.code import Code
from inventory_kernel.models.delivery import DeliveryHistory
from inventory_kernel.models.shipment import ShipmentItem
from inventory_kernel.models.storage import Storage


@pytest.fixture
def history_entry(kernel, ctx, session):
    order = kernel.fulfillment.register_order(ctx, "ORD-1")
    delivery = kernel.deliveries.open_delivery(ctx, order.order_id, ShipperInfo("FastShip"))
    return session.scalars(
        select(DeliveryHistory).where(DeliveryHistory.delivery_id == delivery.id)
    ).one()


@pytest.fixture
def item(kernel, ctx, session):
    record = kernel.items.create_shipment(
        ctx, "RCPT-1", date(2026, 1, 2), "Acme Supply",
        [ShipmentLine(product_id=uuid4(), quantity=1)],
    )
    return session.get(ShipmentItem, record.items[0].item_id)


class TestAppendOnly:

    def test_history_cannot_be_updated(self, history_entry, session):
        history_entry.notes = "rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "DeliveryHistory"

    def test_history_cannot_be_deleted(self, history_entry, session):
        session.delete(history_entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_items_are_never_deleted(self, item, session):
        session.delete(item)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "ShipmentItem"

    def test_codes_are_never_deleted(self, item, session):
        code = session.scalars(select(Code).where(Code.value == item.code)).one()
        session.delete(code)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_listeners_can_be_lifted(self, history_entry, session):
        unregister_immutability_listeners()
        try:
            history_entry.notes = "corrected"
            session.flush()
        finally:
            register_immutability_listeners()
        assert history_entry.notes == "corrected"


class TestCheckConstraints:

    def test_storage_usage_within_capacity(self, kernel, ctx, session):
        info = kernel.ledger.create_storage(ctx, "Bay", 2)
        storage = session.get(Storage, info.storage_id)
        storage.used_capacity = 3
        with pytest.raises(IntegrityError):
            session.flush()

    def test_received_item_needs_storage(self, item, session):
        item.status = "received"
        with pytest.raises(IntegrityError):
            session.flush()

    def test_sold_item_needs_order(self, item, session):
        item.status = "sold"
        with pytest.raises(IntegrityError):
            session.flush()
