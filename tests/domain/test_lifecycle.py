"""Tests for status transition tables and item invariants."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from inventory_kernel.domain.lifecycle import (
    DELIVERY_TRANSITIONS,
    ITEM_TRANSITIONS,
    CapacityEffect,
    DeliveryStatus,
    ItemStatus,
    ResolutionStatus,
    check_item_invariants,
    ensure_delivery_transition,
    ensure_resolution_transition,
    item_transition,
)
from inventory_kernel.exceptions import InvalidTransitionError


class TestItemTransitions:

    @pytest.mark.parametrize(
        "source,target,effect",
        [
            (ItemStatus.PENDING, ItemStatus.RECEIVED, CapacityEffect.ADMIT),
            (ItemStatus.RECEIVED, ItemStatus.SOLD, CapacityEffect.RELEASE),
            (ItemStatus.SOLD, ItemStatus.SHIPPED, CapacityEffect.NONE),
            (ItemStatus.SHIPPED, ItemStatus.RETURNED, CapacityEffect.NONE),
            (ItemStatus.SOLD, ItemStatus.RECEIVED, CapacityEffect.ADMIT),
            (ItemStatus.SHIPPED, ItemStatus.RECEIVED, CapacityEffect.ADMIT),
            (ItemStatus.SOLD, ItemStatus.PENDING, CapacityEffect.NONE),
            (ItemStatus.SHIPPED, ItemStatus.PENDING, CapacityEffect.NONE),
            (ItemStatus.RECEIVED, ItemStatus.PENDING, CapacityEffect.RELEASE),
        ],
    )
    def test_legal_transition_and_capacity_effect(self, source, target, effect):
        transition = item_transition(source.value, target, item_code="C")
        assert transition.capacity_effect is effect

    def test_table_has_exactly_the_documented_transitions(self):
        assert len(ITEM_TRANSITIONS) == 9

    @pytest.mark.parametrize(
        "source,target",
        [
            (ItemStatus.PENDING, ItemStatus.SOLD),
            (ItemStatus.PENDING, ItemStatus.SHIPPED),
            (ItemStatus.RECEIVED, ItemStatus.SHIPPED),
            (ItemStatus.RETURNED, ItemStatus.RECEIVED),
            (ItemStatus.SOLD, ItemStatus.RETURNED),
        ],
    )
    def test_illegal_transition_raises(self, source, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            item_transition(source.value, target, item_code="XK7M2PQ9RA")
        assert exc_info.value.current == source.value
        assert exc_info.value.target == target.value


class TestDeliveryTransitions:

    @pytest.mark.parametrize(
        "target", [DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.CANCELLED],
    )
    def test_waiting_can_move_to_any_terminal_state(self, target):
        ensure_delivery_transition(DeliveryStatus.WAITING.value, target, delivery_id=uuid4())

    @pytest.mark.parametrize(
        "terminal", [DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.CANCELLED],
    )
    def test_terminal_states_have_no_exit(self, terminal):
        assert DELIVERY_TRANSITIONS[terminal] == frozenset()
        for target in DeliveryStatus:
            with pytest.raises(InvalidTransitionError):
                ensure_delivery_transition(terminal.value, target, delivery_id=uuid4())


class TestResolutionTransitions:

    def test_pending_to_in_progress_and_completed(self):
        ensure_resolution_transition("pending", ResolutionStatus.IN_PROGRESS, resolution_id=uuid4())
        ensure_resolution_transition("pending", ResolutionStatus.COMPLETED, resolution_id=uuid4())
        ensure_resolution_transition("in_progress", ResolutionStatus.COMPLETED, resolution_id=uuid4())

    def test_completed_is_terminal(self):
        with pytest.raises(InvalidTransitionError):
            ensure_resolution_transition(
                "completed", ResolutionStatus.IN_PROGRESS, resolution_id=uuid4(),
            )


class TestItemInvariants:

    def test_consistent_states(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert check_item_invariants("pending", None, None, None) == []
        assert check_item_invariants("received", uuid4(), None, None) == []
        assert check_item_invariants("sold", None, uuid4(), now) == []
        assert check_item_invariants("shipped", None, uuid4(), now) == []
        assert check_item_invariants("returned", None, None, None) == []

    def test_received_without_storage_violates(self):
        assert len(check_item_invariants("received", None, None, None)) == 1

    def test_sold_with_storage_and_no_order_violates_every_rule(self):
        violations = check_item_invariants("sold", uuid4(), None, None)
        assert len(violations) == 3
