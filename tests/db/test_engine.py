"""Tests for engine initialization and the module-level session factory."""

import pytest
from sqlalchemy import inspect, text

from inventory_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)


@pytest.fixture
def sqlite_engine():
    engine = init_engine_from_url("sqlite://")
    yield engine
    reset_engine()


class TestEngineLifecycle:

    def test_uninitialized(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()
        with pytest.raises(RuntimeError):
            get_session_factory()
        assert is_postgres() is False

    def test_sqlite_initialization(self, sqlite_engine):
        assert get_engine() is sqlite_engine
        assert is_postgres() is False
        with get_session() as session:
            assert session.execute(text("SELECT 1")).scalar() == 1

    def test_create_and_drop_tables(self, sqlite_engine):
        create_tables()
        tables = set(inspect(sqlite_engine).get_table_names())
        assert {
            "storages", "codes", "shipments", "shipment_items", "orders",
            "order_items", "deliveries", "delivery_history", "delivery_resolutions",
            "supplier_returns",
        } <= tables
        drop_tables()
        assert inspect(sqlite_engine).get_table_names() == []


class TestSessionScope:

    def test_commits_on_success(self, sqlite_engine):
        with session_scope() as session:
            session.execute(text("CREATE TABLE t (x INTEGER)"))
            session.execute(text("INSERT INTO t VALUES (1)"))
        with get_session() as session:
            assert session.execute(text("SELECT count(*) FROM t")).scalar() == 1

    def test_rolls_back_on_error(self, sqlite_engine):
        with session_scope() as session:
            session.execute(text("CREATE TABLE t (x INTEGER)"))
        with pytest.raises(ValueError):
            with session_scope() as session:
                session.execute(text("INSERT INTO t VALUES (1)"))
                raise ValueError("abort")
        with get_session() as session:
            assert session.execute(text("SELECT count(*) FROM t")).scalar() == 0
