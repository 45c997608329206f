"""SQLite store adapters.

Implements the persistence ports and the unit of work using SQLite with
aiosqlite for async access. All repositories share one connection owned by
SQLiteDatabase; transactions are opened with BEGIN IMMEDIATE and serialized
by an asyncio.Lock, so a read-validate-write sequence never interleaves
with another writer.
"""

import asyncio
import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

import aiosqlite

from fulfillment.core.errors import AlreadyExistsError
from fulfillment.core.models import FulfillmentAssignment, Product, Store, Warehouse
from fulfillment.core.ports import (
    AssignmentStorePort,
    ProductLookupPort,
    StoreRepositoryPort,
    UnitOfWorkPort,
    WarehouseStorePort,
)

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS warehouses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        business_unit_code TEXT NOT NULL,
        location TEXT NOT NULL,
        capacity INTEGER NOT NULL,
        stock INTEGER,
        created_at TIMESTAMP,
        archived_at TIMESTAMP
    )
    """,
    # Only one active record per business-unit code; archived codes may repeat
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_warehouses_active_code
    ON warehouses(business_unit_code) WHERE archived_at IS NULL
    """,
    "CREATE INDEX IF NOT EXISTS idx_warehouses_location ON warehouses(location)",
    """
    CREATE TABLE IF NOT EXISTS products (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        description TEXT,
        price TEXT,
        stock INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stores (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        quantity_products_in_stock INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fulfillment_assignments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id INTEGER NOT NULL,
        warehouse_code TEXT NOT NULL,
        store_id INTEGER NOT NULL,
        created_at TIMESTAMP NOT NULL,
        CONSTRAINT uk_fulfillment_product_warehouse_store
            UNIQUE (product_id, warehouse_code, store_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_assignments_store ON fulfillment_assignments(store_id)",
    "CREATE INDEX IF NOT EXISTS idx_assignments_warehouse ON fulfillment_assignments(warehouse_code)",
)

WAREHOUSE_COLUMNS = "business_unit_code, location, capacity, stock, created_at, archived_at"
ASSIGNMENT_COLUMNS = "id, product_id, warehouse_code, store_id, created_at"


class SQLiteDatabase(UnitOfWorkPort):
    """Shared SQLite connection and transaction boundary for all repositories."""

    def __init__(self, db_path: str):
        """Initialize the database handle.

        Args:
            db_path: Path to SQLite database file.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()
        self._transaction_owner: asyncio.Task[Any] | None = None

    async def _ensure_connection(self) -> aiosqlite.Connection:
        """Open the connection and create the schema on first use."""
        if self._conn is not None:
            return self._conn

        async with self._connect_lock:
            # Check again after acquiring lock to prevent race
            if self._conn is not None:
                return self._conn

            # Autocommit mode; transactions are opened explicitly
            conn = await aiosqlite.connect(str(self.db_path), isolation_level=None)
            await conn.execute("PRAGMA foreign_keys = ON")
            for statement in SCHEMA:
                await conn.execute(statement)
            self._conn = conn
            logger.debug(f"Opened SQLite database at {self.db_path}")
        return self._conn

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield the shared connection.

        Inside the task that owns the current transaction the connection is
        yielded directly; everywhere else the transaction lock is held for
        the duration of the statement.
        """
        conn = await self._ensure_connection()
        if self._transaction_owner is not None and self._transaction_owner is asyncio.current_task():
            yield conn
            return

        async with self._lock:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed block in one IMMEDIATE transaction."""
        conn = await self._ensure_connection()
        async with self._lock:
            await conn.execute("BEGIN IMMEDIATE")
            self._transaction_owner = asyncio.current_task()
            try:
                yield
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()
            finally:
                self._transaction_owner = None

    async def close_pool(self) -> None:
        """Close the shared connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid date format: {e}") from e


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class SQLiteWarehouseStore(WarehouseStorePort):
    """SQLite-backed WarehouseStorePort."""

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    async def get_all_active(self) -> list[Warehouse]:
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {WAREHOUSE_COLUMNS} FROM warehouses
                WHERE archived_at IS NULL
                ORDER BY business_unit_code
                """
            )
            rows = await cursor.fetchall()
        return [self._row_to_warehouse(row) for row in rows]

    async def find_by_code(self, business_unit_code: str) -> Warehouse | None:
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {WAREHOUSE_COLUMNS} FROM warehouses
                WHERE business_unit_code = ? AND archived_at IS NULL
                """,
                (business_unit_code,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_warehouse(row)

    async def find_active_by_location(self, location: str) -> list[Warehouse]:
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {WAREHOUSE_COLUMNS} FROM warehouses
                WHERE location = ? AND archived_at IS NULL
                ORDER BY business_unit_code
                """,
                (location,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_warehouse(row) for row in rows]

    async def find_history(self, business_unit_code: str) -> list[Warehouse]:
        """Return every record ever stored under a code, oldest first."""
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {WAREHOUSE_COLUMNS} FROM warehouses
                WHERE business_unit_code = ?
                ORDER BY id
                """,
                (business_unit_code,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_warehouse(row) for row in rows]

    async def create(self, warehouse: Warehouse) -> None:
        async with self.db.connection() as conn:
            try:
                await conn.execute(
                    f"""
                    INSERT INTO warehouses ({WAREHOUSE_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        warehouse.business_unit_code,
                        warehouse.location,
                        warehouse.capacity,
                        warehouse.stock,
                        _format_timestamp(warehouse.created_at),
                        _format_timestamp(warehouse.archived_at),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise AlreadyExistsError(
                    f"A warehouse with business unit code "
                    f"'{warehouse.business_unit_code}' already exists.",
                    business_unit_code=warehouse.business_unit_code,
                ) from e

    async def update(self, warehouse: Warehouse) -> None:
        async with self.db.connection() as conn:
            await conn.execute(
                """
                UPDATE warehouses
                SET location = ?, capacity = ?, stock = ?, archived_at = ?
                WHERE business_unit_code = ? AND archived_at IS NULL
                """,
                (
                    warehouse.location,
                    warehouse.capacity,
                    warehouse.stock,
                    _format_timestamp(warehouse.archived_at),
                    warehouse.business_unit_code,
                ),
            )

    async def remove(self, warehouse: Warehouse) -> None:
        async with self.db.connection() as conn:
            await conn.execute(
                "DELETE FROM warehouses WHERE business_unit_code = ? AND archived_at IS NULL",
                (warehouse.business_unit_code,),
            )

    @staticmethod
    def _row_to_warehouse(row: tuple[Any, ...]) -> Warehouse:
        """Convert a database row to a Warehouse object.

        Raises:
            ValueError: If row is malformed or contains invalid data.
        """
        try:
            if not row or len(row) != 6:
                raise ValueError(f"Invalid row length: expected 6, got {len(row) if row else 0}")

            code, location, capacity, stock, created_at, archived_at = row
            if not isinstance(capacity, int):
                raise ValueError(f"Invalid capacity: {capacity}")

            return Warehouse(
                business_unit_code=code,
                location=location,
                capacity=capacity,
                stock=stock,
                created_at=_parse_timestamp(created_at),
                archived_at=_parse_timestamp(archived_at),
            )
        except Exception as e:
            logger.error(f"Failed to parse warehouse row: {e}")
            raise ValueError(f"Row parsing failed: {e}") from e


class SQLiteAssignmentStore(AssignmentStorePort):
    """SQLite-backed AssignmentStorePort. Counts use COUNT(DISTINCT ...)."""

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    async def _scalar(self, query: str, params: tuple[Any, ...]) -> int:
        async with self.db.connection() as conn:
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()
        return int(row[0]) if row and row[0] is not None else 0

    async def exists(self, product_id: int, warehouse_code: str, store_id: int) -> bool:
        return (
            await self._scalar(
                """
                SELECT COUNT(*) FROM fulfillment_assignments
                WHERE product_id = ? AND warehouse_code = ? AND store_id = ?
                """,
                (product_id, warehouse_code, store_id),
            )
            > 0
        )

    async def count_warehouses_for_product_at_store(self, product_id: int, store_id: int) -> int:
        return await self._scalar(
            """
            SELECT COUNT(DISTINCT warehouse_code) FROM fulfillment_assignments
            WHERE product_id = ? AND store_id = ?
            """,
            (product_id, store_id),
        )

    async def count_warehouses_for_store(self, store_id: int) -> int:
        return await self._scalar(
            """
            SELECT COUNT(DISTINCT warehouse_code) FROM fulfillment_assignments
            WHERE store_id = ?
            """,
            (store_id,),
        )

    async def count_products_in_warehouse(self, warehouse_code: str) -> int:
        return await self._scalar(
            """
            SELECT COUNT(DISTINCT product_id) FROM fulfillment_assignments
            WHERE warehouse_code = ?
            """,
            (warehouse_code,),
        )

    async def exists_warehouse_at_store(self, warehouse_code: str, store_id: int) -> bool:
        return (
            await self._scalar(
                """
                SELECT COUNT(*) FROM fulfillment_assignments
                WHERE warehouse_code = ? AND store_id = ?
                """,
                (warehouse_code, store_id),
            )
            > 0
        )

    async def exists_product_at_warehouse(self, product_id: int, warehouse_code: str) -> bool:
        return (
            await self._scalar(
                """
                SELECT COUNT(*) FROM fulfillment_assignments
                WHERE product_id = ? AND warehouse_code = ?
                """,
                (product_id, warehouse_code),
            )
            > 0
        )

    async def create(self, assignment: FulfillmentAssignment) -> FulfillmentAssignment:
        async with self.db.connection() as conn:
            try:
                cursor = await conn.execute(
                    """
                    INSERT INTO fulfillment_assignments
                    (product_id, warehouse_code, store_id, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        assignment.product_id,
                        assignment.warehouse_code,
                        assignment.store_id,
                        assignment.created_at.isoformat(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise AlreadyExistsError(
                    "This fulfillment assignment already exists.",
                    product_id=assignment.product_id,
                    warehouse_code=assignment.warehouse_code,
                    store_id=assignment.store_id,
                ) from e
            assignment_id = cursor.lastrowid

        return FulfillmentAssignment(
            product_id=assignment.product_id,
            warehouse_code=assignment.warehouse_code,
            store_id=assignment.store_id,
            created_at=assignment.created_at,
            id=assignment_id,
        )

    async def get_by_id(self, assignment_id: int) -> FulfillmentAssignment | None:
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                f"SELECT {ASSIGNMENT_COLUMNS} FROM fulfillment_assignments WHERE id = ?",
                (assignment_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_assignment(row)

    async def find_all(
        self,
        store_id: int | None = None,
        warehouse_code: str | None = None,
        product_id: int | None = None,
    ) -> list[FulfillmentAssignment]:
        clauses: list[str] = []
        params: list[Any] = []
        if store_id is not None:
            clauses.append("store_id = ?")
            params.append(store_id)
        if warehouse_code is not None:
            clauses.append("warehouse_code = ?")
            params.append(warehouse_code)
        if product_id is not None:
            clauses.append("product_id = ?")
            params.append(product_id)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                f"SELECT {ASSIGNMENT_COLUMNS} FROM fulfillment_assignments {where} ORDER BY id",
                tuple(params),
            )
            rows = await cursor.fetchall()
        return [self._row_to_assignment(row) for row in rows]

    async def delete(self, assignment_id: int) -> bool:
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM fulfillment_assignments WHERE id = ?", (assignment_id,)
            )
        return cursor.rowcount > 0

    async def delete_by_triple(self, product_id: int, warehouse_code: str, store_id: int) -> int:
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                """
                DELETE FROM fulfillment_assignments
                WHERE product_id = ? AND warehouse_code = ? AND store_id = ?
                """,
                (product_id, warehouse_code, store_id),
            )
        return cursor.rowcount

    @staticmethod
    def _row_to_assignment(row: tuple[Any, ...]) -> FulfillmentAssignment:
        try:
            assignment_id, product_id, warehouse_code, store_id, created_at = row
            created = _parse_timestamp(created_at)
            if created is None:
                raise ValueError("Missing created_at")
            return FulfillmentAssignment(
                product_id=product_id,
                warehouse_code=warehouse_code,
                store_id=store_id,
                created_at=created,
                id=assignment_id,
            )
        except Exception as e:
            logger.error(f"Failed to parse assignment row: {e}")
            raise ValueError(f"Row parsing failed: {e}") from e


class SQLiteProductStore(ProductLookupPort):
    """SQLite-backed product lookup, with inserts for seeding."""

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    async def get_by_id(self, product_id: int) -> Product | None:
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                "SELECT id, name, description, price, stock FROM products WHERE id = ?",
                (product_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        product_id, name, description, price, stock = row
        return Product(
            id=product_id,
            name=name,
            description=description,
            price=Decimal(price) if price is not None else None,
            stock=stock,
        )

    async def create(
        self,
        name: str,
        description: str | None = None,
        price: Decimal | None = None,
        stock: int = 0,
    ) -> Product:
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                "INSERT INTO products (name, description, price, stock) VALUES (?, ?, ?, ?)",
                (name, description, str(price) if price is not None else None, stock),
            )
            product_id = cursor.lastrowid
        assert product_id is not None
        return Product(id=product_id, name=name, description=description, price=price, stock=stock)


class SQLiteStoreRepository(StoreRepositoryPort):
    """SQLite-backed StoreRepositoryPort."""

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    async def get_by_id(self, store_id: int) -> Store | None:
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                "SELECT id, name, quantity_products_in_stock FROM stores WHERE id = ?",
                (store_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return Store(id=row[0], name=row[1], quantity_products_in_stock=row[2])

    async def create(self, store: Store) -> Store:
        async with self.db.connection() as conn:
            try:
                cursor = await conn.execute(
                    "INSERT INTO stores (name, quantity_products_in_stock) VALUES (?, ?)",
                    (store.name, store.quantity_products_in_stock),
                )
            except sqlite3.IntegrityError as e:
                raise AlreadyExistsError(
                    f"A store named '{store.name}' already exists.", name=store.name
                ) from e
        return Store(
            name=store.name,
            quantity_products_in_stock=store.quantity_products_in_stock,
            id=cursor.lastrowid,
        )

    async def update(self, store: Store) -> None:
        async with self.db.connection() as conn:
            try:
                await conn.execute(
                    "UPDATE stores SET name = ?, quantity_products_in_stock = ? WHERE id = ?",
                    (store.name, store.quantity_products_in_stock, store.id),
                )
            except sqlite3.IntegrityError as e:
                raise AlreadyExistsError(
                    f"A store named '{store.name}' already exists.", name=store.name
                ) from e
