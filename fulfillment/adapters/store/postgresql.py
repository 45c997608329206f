"""PostgreSQL store adapters.

Implements the persistence ports and the unit of work using PostgreSQL with
asyncpg for async access. Each transaction runs on one pooled connection at
SERIALIZABLE isolation; repositories pick that connection up through a
context variable so that every read and write of a mutation shares it.
"""

import asyncio
import contextvars
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from fulfillment.core.errors import AlreadyExistsError, InvalidStateError
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
        id BIGSERIAL PRIMARY KEY,
        business_unit_code TEXT NOT NULL,
        location TEXT NOT NULL,
        capacity INTEGER NOT NULL,
        stock INTEGER,
        created_at TIMESTAMPTZ,
        archived_at TIMESTAMPTZ
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_warehouses_active_code
    ON warehouses(business_unit_code) WHERE archived_at IS NULL
    """,
    "CREATE INDEX IF NOT EXISTS idx_warehouses_location ON warehouses(location)",
    """
    CREATE TABLE IF NOT EXISTS products (
        id BIGSERIAL PRIMARY KEY,
        name TEXT UNIQUE NOT NULL,
        description TEXT,
        price NUMERIC(10, 2),
        stock INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stores (
        id BIGSERIAL PRIMARY KEY,
        name TEXT UNIQUE NOT NULL,
        quantity_products_in_stock INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fulfillment_assignments (
        id BIGSERIAL PRIMARY KEY,
        product_id BIGINT NOT NULL,
        warehouse_code TEXT NOT NULL,
        store_id BIGINT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        CONSTRAINT uk_fulfillment_product_warehouse_store
            UNIQUE (product_id, warehouse_code, store_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_assignments_store ON fulfillment_assignments(store_id)",
    "CREATE INDEX IF NOT EXISTS idx_assignments_warehouse ON fulfillment_assignments(warehouse_code)",
)

WAREHOUSE_COLUMNS = "business_unit_code, location, capacity, stock, created_at, archived_at"
ASSIGNMENT_COLUMNS = "id, product_id, warehouse_code, store_id, created_at"


def _affected_rows(status: str) -> int:
    """Parse the row count from a command status such as 'DELETE 1'."""
    try:
        return int(status.split()[-1])
    except (IndexError, ValueError):
        return 0


class PostgreSQLDatabase(UnitOfWorkPort):
    """Connection pool and transaction boundary shared by all repositories."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "fulfillment",
        user: str = "fulfillment",
        password: str = "",
        pool_size: int = 10,
    ):
        """Initialize PostgreSQL database handle with connection pooling.

        Args:
            host: PostgreSQL server hostname.
            port: PostgreSQL server port.
            database: Database name.
            user: Database user.
            password: Database password.
            pool_size: Number of connections to maintain in the pool.
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self._pool: asyncpg.Pool | None = None
        self._pool_size = pool_size
        self._schema_lock = asyncio.Lock()
        self._schema_initialized = False
        self._current: contextvars.ContextVar[asyncpg.Connection | None] = contextvars.ContextVar(
            f"fulfillment_pg_connection_{id(self)}", default=None
        )

    async def _init_pool(self) -> None:
        """Initialize the connection pool on first use."""
        if self._pool is not None:
            return

        self._pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            min_size=1,
            max_size=self._pool_size,
        )

    async def close_pool(self) -> None:
        """Close all pooled connections."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def _init_schema(self) -> None:
        """Initialize database schema on first use.

        Only runs once per instance. Subsequent calls are no-ops.
        """
        if self._schema_initialized:
            return

        async with self._schema_lock:
            if self._schema_initialized:
                return

            await self._init_pool()
            assert self._pool is not None

            async with self._pool.acquire() as conn:
                for statement in SCHEMA:
                    await conn.execute(statement)

            self._schema_initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        """Yield the connection of the current transaction, or a pooled one."""
        current = self._current.get()
        if current is not None:
            yield current
            return

        await self._init_schema()
        assert self._pool is not None
        async with self._pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed block in one SERIALIZABLE transaction.

        Serialization failures and deadlocks roll the transaction back and
        surface as InvalidStateError marked retryable; nothing is retried here.
        """
        await self._init_schema()
        assert self._pool is not None

        async with self._pool.acquire() as conn:
            try:
                async with conn.transaction(isolation="serializable"):
                    token = self._current.set(conn)
                    try:
                        yield
                    finally:
                        self._current.reset(token)
            except asyncpg.TransactionRollbackError as e:
                logger.warning(
                    f"Transaction rolled back by a concurrent update: {e}",
                    extra={"sqlstate": e.sqlstate},
                )
                raise InvalidStateError(
                    "The operation conflicted with a concurrent update and was not applied.",
                    retryable=True,
                    sqlstate=e.sqlstate,
                ) from e


class PostgreSQLWarehouseStore(WarehouseStorePort):
    """PostgreSQL-backed WarehouseStorePort."""

    def __init__(self, db: PostgreSQLDatabase):
        self.db = db

    async def get_all_active(self) -> list[Warehouse]:
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {WAREHOUSE_COLUMNS} FROM warehouses
                WHERE archived_at IS NULL
                ORDER BY business_unit_code
                """
            )
        return [self._row_to_warehouse(row) for row in rows]

    async def find_by_code(self, business_unit_code: str) -> Warehouse | None:
        async with self.db.connection() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {WAREHOUSE_COLUMNS} FROM warehouses
                WHERE business_unit_code = $1 AND archived_at IS NULL
                """,
                business_unit_code,
            )
        if row is None:
            return None
        return self._row_to_warehouse(row)

    async def find_active_by_location(self, location: str) -> list[Warehouse]:
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {WAREHOUSE_COLUMNS} FROM warehouses
                WHERE location = $1 AND archived_at IS NULL
                ORDER BY business_unit_code
                """,
                location,
            )
        return [self._row_to_warehouse(row) for row in rows]

    async def create(self, warehouse: Warehouse) -> None:
        async with self.db.connection() as conn:
            try:
                await conn.execute(
                    f"""
                    INSERT INTO warehouses ({WAREHOUSE_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6)
                    """,
                    warehouse.business_unit_code,
                    warehouse.location,
                    warehouse.capacity,
                    warehouse.stock,
                    warehouse.created_at,
                    warehouse.archived_at,
                )
            except asyncpg.UniqueViolationError as e:
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
                SET location = $1, capacity = $2, stock = $3, archived_at = $4
                WHERE business_unit_code = $5 AND archived_at IS NULL
                """,
                warehouse.location,
                warehouse.capacity,
                warehouse.stock,
                warehouse.archived_at,
                warehouse.business_unit_code,
            )

    async def remove(self, warehouse: Warehouse) -> None:
        async with self.db.connection() as conn:
            await conn.execute(
                "DELETE FROM warehouses WHERE business_unit_code = $1 AND archived_at IS NULL",
                warehouse.business_unit_code,
            )

    async def find_history(self, business_unit_code: str) -> list[Warehouse]:
        """Return every record ever stored under a code, oldest first."""
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {WAREHOUSE_COLUMNS} FROM warehouses
                WHERE business_unit_code = $1
                ORDER BY id
                """,
                business_unit_code,
            )
        return [self._row_to_warehouse(row) for row in rows]

    def _row_to_warehouse(self, row: asyncpg.Record) -> Warehouse:
        """Convert a database row to a Warehouse object.

        Raises:
            ValueError: If row is malformed or contains invalid data.
        """
        try:
            return Warehouse(
                business_unit_code=row["business_unit_code"],
                location=row["location"],
                capacity=row["capacity"],
                stock=row["stock"],
                created_at=row["created_at"],
                archived_at=row["archived_at"],
            )
        except Exception as e:
            logger.error(f"Unexpected error parsing warehouse row: {e}", exc_info=True)
            raise ValueError(f"Row parsing failed: {e}") from e


class PostgreSQLAssignmentStore(AssignmentStorePort):
    """PostgreSQL-backed AssignmentStorePort."""

    def __init__(self, db: PostgreSQLDatabase):
        self.db = db

    async def _scalar(self, query: str, *args: Any) -> int:
        async with self.db.connection() as conn:
            value = await conn.fetchval(query, *args)
        return int(value or 0)

    async def exists(self, product_id: int, warehouse_code: str, store_id: int) -> bool:
        count = await self._scalar(
            """
            SELECT COUNT(*) FROM fulfillment_assignments
            WHERE product_id = $1 AND warehouse_code = $2 AND store_id = $3
            """,
            product_id,
            warehouse_code,
            store_id,
        )
        return count > 0

    async def count_warehouses_for_product_at_store(self, product_id: int, store_id: int) -> int:
        return await self._scalar(
            """
            SELECT COUNT(DISTINCT warehouse_code) FROM fulfillment_assignments
            WHERE product_id = $1 AND store_id = $2
            """,
            product_id,
            store_id,
        )

    async def count_warehouses_for_store(self, store_id: int) -> int:
        return await self._scalar(
            """
            SELECT COUNT(DISTINCT warehouse_code) FROM fulfillment_assignments
            WHERE store_id = $1
            """,
            store_id,
        )

    async def count_products_in_warehouse(self, warehouse_code: str) -> int:
        return await self._scalar(
            """
            SELECT COUNT(DISTINCT product_id) FROM fulfillment_assignments
            WHERE warehouse_code = $1
            """,
            warehouse_code,
        )

    async def exists_warehouse_at_store(self, warehouse_code: str, store_id: int) -> bool:
        count = await self._scalar(
            """
            SELECT COUNT(*) FROM fulfillment_assignments
            WHERE warehouse_code = $1 AND store_id = $2
            """,
            warehouse_code,
            store_id,
        )
        return count > 0

    async def exists_product_at_warehouse(self, product_id: int, warehouse_code: str) -> bool:
        count = await self._scalar(
            """
            SELECT COUNT(*) FROM fulfillment_assignments
            WHERE product_id = $1 AND warehouse_code = $2
            """,
            product_id,
            warehouse_code,
        )
        return count > 0

    async def create(self, assignment: FulfillmentAssignment) -> FulfillmentAssignment:
        async with self.db.connection() as conn:
            try:
                assignment_id = await conn.fetchval(
                    """
                    INSERT INTO fulfillment_assignments
                    (product_id, warehouse_code, store_id, created_at)
                    VALUES ($1, $2, $3, $4)
                    RETURNING id
                    """,
                    assignment.product_id,
                    assignment.warehouse_code,
                    assignment.store_id,
                    assignment.created_at,
                )
            except asyncpg.UniqueViolationError as e:
                raise AlreadyExistsError(
                    "This fulfillment assignment already exists.",
                    product_id=assignment.product_id,
                    warehouse_code=assignment.warehouse_code,
                    store_id=assignment.store_id,
                ) from e

        return FulfillmentAssignment(
            product_id=assignment.product_id,
            warehouse_code=assignment.warehouse_code,
            store_id=assignment.store_id,
            created_at=assignment.created_at,
            id=assignment_id,
        )

    async def get_by_id(self, assignment_id: int) -> FulfillmentAssignment | None:
        async with self.db.connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {ASSIGNMENT_COLUMNS} FROM fulfillment_assignments WHERE id = $1",
                assignment_id,
            )
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
        for column, value in (
            ("store_id", store_id),
            ("warehouse_code", warehouse_code),
            ("product_id", product_id),
        ):
            if value is not None:
                params.append(value)
                clauses.append(f"{column} = ${len(params)}")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                f"SELECT {ASSIGNMENT_COLUMNS} FROM fulfillment_assignments {where} ORDER BY id",
                *params,
            )
        return [self._row_to_assignment(row) for row in rows]

    async def delete(self, assignment_id: int) -> bool:
        async with self.db.connection() as conn:
            status = await conn.execute(
                "DELETE FROM fulfillment_assignments WHERE id = $1", assignment_id
            )
        return _affected_rows(status) > 0

    async def delete_by_triple(self, product_id: int, warehouse_code: str, store_id: int) -> int:
        async with self.db.connection() as conn:
            status = await conn.execute(
                """
                DELETE FROM fulfillment_assignments
                WHERE product_id = $1 AND warehouse_code = $2 AND store_id = $3
                """,
                product_id,
                warehouse_code,
                store_id,
            )
        return _affected_rows(status)

    def _row_to_assignment(self, row: asyncpg.Record) -> FulfillmentAssignment:
        try:
            return FulfillmentAssignment(
                product_id=row["product_id"],
                warehouse_code=row["warehouse_code"],
                store_id=row["store_id"],
                created_at=row["created_at"],
                id=row["id"],
            )
        except Exception as e:
            logger.error(f"Unexpected error parsing assignment row: {e}", exc_info=True)
            raise ValueError(f"Row parsing failed: {e}") from e


class PostgreSQLProductStore(ProductLookupPort):
    """PostgreSQL-backed product lookup, with inserts for seeding."""

    def __init__(self, db: PostgreSQLDatabase):
        self.db = db

    async def get_by_id(self, product_id: int) -> Product | None:
        async with self.db.connection() as conn:
            row = await conn.fetchrow(
                "SELECT id, name, description, price, stock FROM products WHERE id = $1",
                product_id,
            )
        if row is None:
            return None
        return Product(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            price=row["price"],
            stock=row["stock"],
        )

    async def create(
        self,
        name: str,
        description: str | None = None,
        price: Any = None,
        stock: int = 0,
    ) -> Product:
        async with self.db.connection() as conn:
            product_id = await conn.fetchval(
                """
                INSERT INTO products (name, description, price, stock)
                VALUES ($1, $2, $3, $4)
                RETURNING id
                """,
                name,
                description,
                price,
                stock,
            )
        return Product(id=product_id, name=name, description=description, price=price, stock=stock)


class PostgreSQLStoreRepository(StoreRepositoryPort):
    """PostgreSQL-backed StoreRepositoryPort."""

    def __init__(self, db: PostgreSQLDatabase):
        self.db = db

    async def get_by_id(self, store_id: int) -> Store | None:
        async with self.db.connection() as conn:
            row = await conn.fetchrow(
                "SELECT id, name, quantity_products_in_stock FROM stores WHERE id = $1",
                store_id,
            )
        if row is None:
            return None
        return Store(
            id=row["id"],
            name=row["name"],
            quantity_products_in_stock=row["quantity_products_in_stock"],
        )

    async def create(self, store: Store) -> Store:
        async with self.db.connection() as conn:
            try:
                store_id = await conn.fetchval(
                    """
                    INSERT INTO stores (name, quantity_products_in_stock)
                    VALUES ($1, $2)
                    RETURNING id
                    """,
                    store.name,
                    store.quantity_products_in_stock,
                )
            except asyncpg.UniqueViolationError as e:
                raise AlreadyExistsError(
                    f"A store named '{store.name}' already exists.", name=store.name
                ) from e
        return Store(
            name=store.name,
            quantity_products_in_stock=store.quantity_products_in_stock,
            id=store_id,
        )

    async def update(self, store: Store) -> None:
        async with self.db.connection() as conn:
            try:
                await conn.execute(
                    """
                    UPDATE stores SET name = $1, quantity_products_in_stock = $2
                    WHERE id = $3
                    """,
                    store.name,
                    store.quantity_products_in_stock,
                    store.id,
                )
            except asyncpg.UniqueViolationError as e:
                raise AlreadyExistsError(
                    f"A store named '{store.name}' already exists.", name=store.name
                ) from e
