"""Tests for the transaction boundary: commit, rollback, conflicts, outbox."""

from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from inventory_kernel.exceptions import (
    ConcurrencyConflictError,
    StorageNotFoundError,
)
from inventory_kernel.logging_config import LogContext
from inventory_kernel.models.storage import Storage
from inventory_services.notifications import Notification, NotificationDispatcher
from inventory_services.unit_of_work import (
    UnitOfWork,
    is_retryable_conflict,
    is_unique_violation,
)


@pytest.fixture
def uow(session_factory, clock, config, formats, collaborator):
    dispatcher = NotificationDispatcher(
        inventory_sync=collaborator,
        search_index=collaborator,
        order_channel=collaborator,
    )
    return UnitOfWork(session_factory, clock, config, formats, dispatcher)


def _storage_names(session_factory, ctx) -> set[str]:
    with session_factory() as session:
        return set(session.scalars(
            select(Storage.name).where(Storage.organization_id == ctx.organization_id)
        ))


class TestCommitAndRollback:

    def test_commit_persists(self, uow, ctx, session_factory):
        with uow.transaction(ctx, "create_storage") as kernel:
            kernel.ledger.create_storage(ctx, "Bay 1", 4)
        assert _storage_names(session_factory, ctx) == {"Bay 1"}

    def test_unexpected_error_rolls_back(self, uow, ctx, session_factory, captured_logs):
        with pytest.raises(RuntimeError):
            with uow.transaction(ctx, "create_storage") as kernel:
                kernel.ledger.create_storage(ctx, "Bay 1", 4)
                raise RuntimeError("boom")
        assert _storage_names(session_factory, ctx) == set()
        failed = [r for r in captured_logs() if r["message"] == "operation_failed"]
        assert failed and failed[0]["exc_type"] == "RuntimeError"

    def test_kernel_error_rolls_back_and_is_reraised(
        self, uow, ctx, session_factory, captured_logs,
    ):
        with pytest.raises(StorageNotFoundError):
            with uow.transaction(ctx, "admit") as kernel:
                kernel.ledger.create_storage(ctx, "Bay 1", 4)
                kernel.ledger.admit(ctx, uuid4(), 1)
        assert _storage_names(session_factory, ctx) == set()
        rejected = [r for r in captured_logs() if r["message"] == "operation_rejected"]
        assert rejected[0]["error_code"] == StorageNotFoundError.code

    def test_duplicate_name_is_a_conflict(self, uow, ctx, session_factory):
        with uow.transaction(ctx, "create_storage") as kernel:
            kernel.ledger.create_storage(ctx, "Bay 1", 4)
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            with uow.transaction(ctx, "create_storage") as kernel:
                kernel.ledger.create_storage(ctx, "Bay 1", 8)
        assert exc_info.value.operation == "create_storage"
        assert _storage_names(session_factory, ctx) == {"Bay 1"}


class TestOutbox:

    def test_dispatched_only_after_commit(self, uow, ctx, collaborator):
        order_id = uuid4()
        with uow.transaction(ctx, "notify") as kernel:
            kernel.notify(Notification.fulfillment_created(ctx.organization_id, order_id))
            assert collaborator.calls == []
        assert collaborator.calls == [
            ("fulfillment_created", ctx.organization_id, order_id),
        ]

    def test_discarded_on_rollback(self, uow, ctx, collaborator):
        with pytest.raises(RuntimeError):
            with uow.transaction(ctx, "notify") as kernel:
                kernel.notify(Notification.fulfillment_created(ctx.organization_id, uuid4()))
                raise RuntimeError("boom")
        assert collaborator.calls == []

    def test_collaborator_failure_does_not_undo_commit(
        self, uow, ctx, session_factory, collaborator, captured_logs,
    ):
        collaborator.fail_on = {"fulfillment_created"}
        product = uuid4()
        with uow.transaction(ctx, "create_storage") as kernel:
            kernel.ledger.create_storage(ctx, "Bay 1", 4)
            kernel.notify(
                Notification.fulfillment_created(ctx.organization_id, uuid4()),
                Notification.inventory_sync(ctx.organization_id, [product]),
            )
        assert _storage_names(session_factory, ctx) == {"Bay 1"}
        assert collaborator.named("queue_sync") == [
            ("queue_sync", ctx.organization_id, (product,)),
        ]
        warnings = [r for r in captured_logs() if r["message"] == "notification_failed"]
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["kind"] == "fulfillment_created"

    def test_empty_sync_is_skipped(self, ctx, collaborator):
        dispatcher = NotificationDispatcher(collaborator, collaborator, collaborator)
        delivered = dispatcher.dispatch([
            Notification.inventory_sync(ctx.organization_id, []),
            Notification.search_refresh(ctx.organization_id, "orders", []),
        ])
        assert delivered == 2
        assert collaborator.calls == []


class TestLogContext:

    def test_operation_fields_bound_and_released(self, uow, ctx, captured_logs):
        with uow.transaction(ctx, "create_storage", delivery_id="d-1") as kernel:
            kernel.ledger.create_storage(ctx, "Bay 1", 4)
        created = next(r for r in captured_logs() if r["message"] == "storage_created")
        assert created["operation"] == "create_storage"
        assert created["organization_id"] == str(ctx.organization_id)
        assert created["actor_id"] == str(ctx.actor_id)
        assert created["delivery_id"] == "d-1"
        assert "correlation_id" in created

        completed = next(r for r in captured_logs() if r["message"] == "operation_completed")
        assert completed["correlation_id"] == created["correlation_id"]
        assert "duration_ms" in completed
        assert LogContext.get_all() == {}

    def test_each_transaction_has_its_own_correlation_id(self, uow, ctx, captured_logs):
        for name in ("Bay 1", "Bay 2"):
            with uow.transaction(ctx, "create_storage") as kernel:
                kernel.ledger.create_storage(ctx, name, 4)
        ids = {
            r["correlation_id"] for r in captured_logs() if r["message"] == "storage_created"
        }
        assert len(ids) == 2


class TestErrorClassification:

    def test_unique_violation_by_pgcode(self):
        exc = IntegrityError("INSERT", {}, SimpleNamespace(pgcode="23505"))
        assert is_unique_violation(exc)

    def test_other_integrity_error_by_pgcode(self):
        exc = IntegrityError("INSERT", {}, SimpleNamespace(pgcode="23503"))
        assert not is_unique_violation(exc)

    def test_unique_violation_by_message(self):
        exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: storages.name"))
        assert is_unique_violation(exc)

    @pytest.mark.parametrize("pgcode", ["40001", "40P01"])
    def test_serialization_and_deadlock_are_retryable(self, pgcode):
        exc = OperationalError("UPDATE", {}, SimpleNamespace(pgcode=pgcode))
        assert is_retryable_conflict(exc)

    def test_locked_sqlite_database_is_retryable(self):
        exc = OperationalError("UPDATE", {}, Exception("database is locked"))
        assert is_retryable_conflict(exc)

    def test_connection_loss_is_not_retryable(self):
        exc = OperationalError("SELECT", {}, SimpleNamespace(pgcode="08006"))
        assert not is_retryable_conflict(exc)
