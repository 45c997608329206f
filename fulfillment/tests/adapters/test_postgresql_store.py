"""Tests for the PostgreSQL store adapters.

These tests exercise construction, row mapping and connection routing
without a PostgreSQL server.
"""

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from fulfillment.adapters.store.postgresql import (
    PostgreSQLAssignmentStore,
    PostgreSQLDatabase,
    PostgreSQLStoreRepository,
    PostgreSQLWarehouseStore,
    _affected_rows,
)
from fulfillment.core.errors import AlreadyExistsError, InvalidStateError
from fulfillment.core.models import FulfillmentAssignment, Store, Warehouse

NOW = datetime(2024, 3, 1, 8, 30, tzinfo=UTC)


@pytest.fixture
def postgres_config():
    """PostgreSQL connection configuration."""
    return {
        "host": "db.internal",
        "port": 5433,
        "database": "fulfillment_test",
        "user": "fulfillment_test",
        "password": "secret",
        "pool_size": 5,
    }


class TestPostgreSQLDatabaseInitialization:
    def test_initialization(self, postgres_config) -> None:
        db = PostgreSQLDatabase(**postgres_config)

        assert db.host == "db.internal"
        assert db.port == 5433
        assert db.database == "fulfillment_test"
        assert db.user == "fulfillment_test"
        assert db.password == "secret"

    def test_default_configuration(self) -> None:
        db = PostgreSQLDatabase()

        assert db.host == "localhost"
        assert db.port == 5432
        assert db.database == "fulfillment"
        assert db.user == "fulfillment"

    @pytest.mark.asyncio
    async def test_close_pool_without_pool(self) -> None:
        db = PostgreSQLDatabase()

        await db.close_pool()

        assert db._pool is None


@pytest.mark.parametrize(
    "status,expected",
    [("DELETE 1", 1), ("DELETE 0", 0), ("UPDATE 3", 3), ("", 0), ("DELETE", 0)],
)
def test_affected_rows(status: str, expected: int) -> None:
    assert _affected_rows(status) == expected


class TestRowMapping:
    def test_warehouse_row(self) -> None:
        store = PostgreSQLWarehouseStore(PostgreSQLDatabase())
        row = {
            "business_unit_code": "MWH.001",
            "location": "ZWOLLE-001",
            "capacity": 40,
            "stock": None,
            "created_at": NOW,
            "archived_at": None,
        }

        warehouse = store._row_to_warehouse(row)  # type: ignore[arg-type]

        assert warehouse == Warehouse("MWH.001", "ZWOLLE-001", 40, None, created_at=NOW)

    def test_malformed_warehouse_row(self) -> None:
        store = PostgreSQLWarehouseStore(PostgreSQLDatabase())

        with pytest.raises(ValueError, match="Row parsing failed"):
            store._row_to_warehouse({"business_unit_code": "MWH.001"})  # type: ignore[arg-type]

    def test_assignment_row(self) -> None:
        store = PostgreSQLAssignmentStore(PostgreSQLDatabase())
        row = {
            "id": 7,
            "product_id": 1,
            "warehouse_code": "MWH.001",
            "store_id": 2,
            "created_at": NOW,
        }

        assignment = store._row_to_assignment(row)  # type: ignore[arg-type]

        assert assignment == FulfillmentAssignment(1, "MWH.001", 2, created_at=NOW, id=7)


def _database_with_connection(conn: MagicMock) -> PostgreSQLDatabase:
    """Route repository calls to a mocked connection."""
    db = PostgreSQLDatabase()
    db._current.set(conn)
    return db


@pytest.mark.asyncio
class TestConnectionRouting:
    async def test_connection_reuses_transaction_connection(self) -> None:
        conn = MagicMock()
        db = _database_with_connection(conn)

        async with db.connection() as active:
            assert active is conn

    async def test_count_query_uses_distinct(self) -> None:
        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=2)
        store = PostgreSQLAssignmentStore(_database_with_connection(conn))

        assert await store.count_warehouses_for_store(1) == 2
        query = conn.fetchval.call_args.args[0]
        assert "COUNT(DISTINCT warehouse_code)" in query

    async def test_find_all_numbers_placeholders(self) -> None:
        conn = MagicMock()
        conn.fetch = AsyncMock(return_value=[])
        store = PostgreSQLAssignmentStore(_database_with_connection(conn))

        await store.find_all(store_id=1, product_id=3)

        query = conn.fetch.call_args.args[0]
        assert "store_id = $1 AND product_id = $2" in query
        assert conn.fetch.call_args.args[1:] == (1, 3)

    async def test_unique_violation_maps_to_already_exists(self) -> None:
        conn = MagicMock()
        conn.fetchval = AsyncMock(side_effect=asyncpg.UniqueViolationError("duplicate key"))
        store = PostgreSQLAssignmentStore(_database_with_connection(conn))

        with pytest.raises(AlreadyExistsError):
            await store.create(FulfillmentAssignment(1, "MWH.001", 1, created_at=NOW))

    async def test_store_create_returns_id(self) -> None:
        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=11)
        repository = PostgreSQLStoreRepository(_database_with_connection(conn))

        created = await repository.create(Store(name="TONSTAD", quantity_products_in_stock=3))

        assert created == Store(name="TONSTAD", quantity_products_in_stock=3, id=11)

    async def test_delete_reports_affected_rows(self) -> None:
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="DELETE 0")
        store = PostgreSQLAssignmentStore(_database_with_connection(conn))

        assert await store.delete(5) is False

    async def test_find_history_orders_by_insertion(self) -> None:
        conn = MagicMock()
        conn.fetch = AsyncMock(return_value=[])
        store = PostgreSQLWarehouseStore(_database_with_connection(conn))

        assert await store.find_history("MWH.001") == []
        query = conn.fetch.call_args.args[0]
        assert "ORDER BY id" in query
        assert conn.fetch.call_args.args[1] == "MWH.001"


class FakeTransaction:
    """Stand-in for asyncpg's transaction context manager."""

    def __init__(self, commit_error: Exception | None = None) -> None:
        self.commit_error = commit_error

    async def __aenter__(self) -> "FakeTransaction":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is None and self.commit_error is not None:
            raise self.commit_error
        return False


def _database_with_pool(conn: MagicMock) -> PostgreSQLDatabase:
    """Hand out a mocked connection from a pool with the schema already in place."""

    @asynccontextmanager
    async def acquire():
        yield conn

    pool = MagicMock()
    pool.acquire = acquire
    db = PostgreSQLDatabase()
    db._pool = pool
    db._schema_initialized = True
    return db


@pytest.mark.asyncio
class TestTransactionConflicts:
    async def test_serialization_failure_on_commit_is_classified(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        conn = MagicMock()
        failure = asyncpg.SerializationError("could not serialize access")
        conn.transaction = MagicMock(return_value=FakeTransaction(commit_error=failure))
        db = _database_with_pool(conn)

        with caplog.at_level(logging.WARNING, logger="fulfillment.adapters.store.postgresql"):
            with pytest.raises(InvalidStateError) as exc_info:
                async with db.transaction():
                    pass

        assert exc_info.value.details["retryable"] is True
        assert exc_info.value.details["sqlstate"] == "40001"
        assert exc_info.value.__cause__ is failure
        assert conn.transaction.call_args.kwargs == {"isolation": "serializable"}
        assert "rolled back by a concurrent update" in caplog.text

    async def test_deadlock_inside_block_is_classified(self) -> None:
        conn = MagicMock()
        conn.transaction = MagicMock(return_value=FakeTransaction())
        conn.fetchval = AsyncMock(side_effect=asyncpg.DeadlockDetectedError("deadlock detected"))
        db = _database_with_pool(conn)
        assignments = PostgreSQLAssignmentStore(db)

        with pytest.raises(InvalidStateError) as exc_info:
            async with db.transaction():
                await assignments.count_warehouses_for_store(1)

        assert exc_info.value.details["sqlstate"] == "40P01"
        assert db._current.get() is None

    async def test_domain_errors_pass_through(self) -> None:
        conn = MagicMock()
        conn.transaction = MagicMock(return_value=FakeTransaction())
        db = _database_with_pool(conn)

        with pytest.raises(AlreadyExistsError):
            async with db.transaction():
                raise AlreadyExistsError("duplicate")
