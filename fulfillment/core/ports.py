"""Port interfaces for the fulfillment system.

These abstract base classes define the boundaries between core
domain logic and external adapters. Implementations live in the
adapters/ package.

Port Interface Categories:

1. **Driven Ports** (core calls out to adapters)
   - LocationResolverPort: Static location lookup
   - UnitOfWorkPort: Transaction demarcation for mutations
   - WarehouseStorePort: Persist and query warehouses
   - AssignmentStorePort: Persist and aggregate fulfillment assignments
   - ProductLookupPort / StoreRepositoryPort: Cross-entity existence checks
   - StoreEventPort: Post-commit propagation to the legacy store manager

2. **Driving Ports** (adapters/external systems call into core)
   - WarehouseOperationsPort: Create, replace, archive warehouses
   - FulfillmentPort: Create and delete fulfillment assignments
   - StoreManagementPort: Create and update stores
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager

from .models import (
    FulfillmentAssignment,
    Location,
    Product,
    Store,
    StoreEvent,
    Warehouse,
)


# ============================================================================
# DRIVEN PORTS (Core calls out to adapters)
# ============================================================================


class LocationResolverPort(ABC):
    """Port for resolving location identifiers to their capacity limits."""

    @abstractmethod
    def resolve(self, identifier: str | None) -> Location | None:
        """Resolve a location by its identifier.

        Args:
            identifier: Case-sensitive location identifier.

        Returns:
            The Location, or None for unknown or empty identifiers.
            Never raises.
        """

    @abstractmethod
    def all(self) -> list[Location]:
        """Return every known location."""


class UnitOfWorkPort(ABC):
    """Port for demarcating one atomic read-validate-write sequence.

    Implementations must guarantee that concurrent transactions cannot both
    pass the same cardinality check and both write. Uniqueness constraints
    (active business-unit codes, assignment triples) are enforced by the
    storage layer as a backstop.
    """

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Open a transaction.

        Entering begins the transaction. A normal exit commits; an exception
        rolls back and propagates.
        """


class WarehouseStorePort(ABC):
    """Port for persisting and querying warehouses.

    Only the active record of a business-unit code is ever addressed by
    code; archived records stay in storage as history.
    """

    @abstractmethod
    async def get_all_active(self) -> list[Warehouse]:
        """Return every active warehouse, ordered by business-unit code."""

    @abstractmethod
    async def find_by_code(self, business_unit_code: str) -> Warehouse | None:
        """Return the active warehouse with this code, or None.

        Archived warehouses under the same code are ignored.
        """

    @abstractmethod
    async def find_active_by_location(self, location: str) -> list[Warehouse]:
        """Return the active warehouses at a location."""

    @abstractmethod
    async def create(self, warehouse: Warehouse) -> None:
        """Persist a new warehouse.

        Raises:
            AlreadyExistsError: If an active warehouse already uses the code.
        """

    @abstractmethod
    async def update(self, warehouse: Warehouse) -> None:
        """Update the active record carrying the warehouse's code.

        Location, capacity, stock and archived_at are written. No-op if no
        active record exists.
        """

    @abstractmethod
    async def remove(self, warehouse: Warehouse) -> None:
        """Hard-delete the active record carrying the warehouse's code."""


class AssignmentStorePort(ABC):
    """Port for persisting fulfillment assignments and computing aggregates.

    All counts are of DISTINCT warehouses or products, not of rows.
    """

    @abstractmethod
    async def exists(self, product_id: int, warehouse_code: str, store_id: int) -> bool:
        """Return True if the exact triple is already assigned."""

    @abstractmethod
    async def count_warehouses_for_product_at_store(
        self, product_id: int, store_id: int
    ) -> int:
        """Count distinct warehouses fulfilling a product for a store."""

    @abstractmethod
    async def count_warehouses_for_store(self, store_id: int) -> int:
        """Count distinct warehouses fulfilling any product for a store."""

    @abstractmethod
    async def count_products_in_warehouse(self, warehouse_code: str) -> int:
        """Count distinct products stored in a warehouse for any store."""

    @abstractmethod
    async def exists_warehouse_at_store(self, warehouse_code: str, store_id: int) -> bool:
        """Return True if the warehouse fulfills any product for the store."""

    @abstractmethod
    async def exists_product_at_warehouse(self, product_id: int, warehouse_code: str) -> bool:
        """Return True if the product is stored in the warehouse for any store."""

    @abstractmethod
    async def create(self, assignment: FulfillmentAssignment) -> FulfillmentAssignment:
        """Persist an assignment and return it with its surrogate id.

        Raises:
            AlreadyExistsError: If the triple already exists.
        """

    @abstractmethod
    async def get_by_id(self, assignment_id: int) -> FulfillmentAssignment | None:
        """Return the assignment with this id, or None."""

    @abstractmethod
    async def find_all(
        self,
        store_id: int | None = None,
        warehouse_code: str | None = None,
        product_id: int | None = None,
    ) -> list[FulfillmentAssignment]:
        """Return assignments matching every given filter, ordered by id."""

    @abstractmethod
    async def delete(self, assignment_id: int) -> bool:
        """Delete by id. Returns False if nothing was deleted."""

    @abstractmethod
    async def delete_by_triple(
        self, product_id: int, warehouse_code: str, store_id: int
    ) -> int:
        """Delete by exact triple. Returns the number of rows deleted."""


class ProductLookupPort(ABC):
    """Port for read-only product existence checks."""

    @abstractmethod
    async def get_by_id(self, product_id: int) -> Product | None:
        """Return the product, or None if it does not exist."""


class StoreRepositoryPort(ABC):
    """Port for store lookups and the store mutations the core performs."""

    @abstractmethod
    async def get_by_id(self, store_id: int) -> Store | None:
        """Return the store, or None if it does not exist."""

    @abstractmethod
    async def create(self, store: Store) -> Store:
        """Persist a new store and return it with its id set."""

    @abstractmethod
    async def update(self, store: Store) -> None:
        """Persist changes to an existing store."""


class StoreEventPort(ABC):
    """Port for propagating committed store changes to the legacy system.

    Delivery is best-effort and at-most-once. The core never awaits a
    result from this port that could change its own outcome.
    """

    @abstractmethod
    async def publish(self, event: StoreEvent) -> None:
        """Deliver a store event.

        Raises:
            Exception: If the downstream system is unavailable. The caller
                logs and discards the failure.
        """


# ============================================================================
# DRIVING PORTS (Adapters/external systems call into core)
# ============================================================================


class WarehouseOperationsPort(ABC):
    """Port for warehouse lifecycle operations.

    Implementations live in the core (warehouse_service.py). The CLI
    adapter calls these methods.
    """

    @abstractmethod
    async def create_warehouse(self, warehouse: Warehouse) -> Warehouse:
        """Create a warehouse at a known location.

        Raises:
            AlreadyExistsError: Active warehouse with the same code exists.
            NotFoundError: Location is unknown.
            LimitExceededError: Location warehouse count or capacity exceeded.
            InvalidStateError: Stock exceeds capacity.
        """

    @abstractmethod
    async def archive_warehouse(self, business_unit_code: str) -> Warehouse:
        """Archive the active warehouse with this code.

        Raises:
            NotFoundError: No active warehouse with this code.
        """

    @abstractmethod
    async def replace_warehouse(self, warehouse: Warehouse) -> Warehouse:
        """Supersede the active warehouse carrying the same code.

        Raises:
            NotFoundError: No active warehouse to replace, or unknown location.
            InvalidStateError: Capacity cannot hold the stock, or stock differs.
            LimitExceededError: New location warehouse count or capacity exceeded.
        """

    @abstractmethod
    async def get_warehouse(self, business_unit_code: str) -> Warehouse:
        """Return the active warehouse with this code.

        Raises:
            NotFoundError: No active warehouse with this code.
        """

    @abstractmethod
    async def list_warehouses(self) -> list[Warehouse]:
        """Return every active warehouse."""


class FulfillmentPort(ABC):
    """Port for fulfillment assignment operations."""

    @abstractmethod
    async def create_assignment(
        self,
        product_id: int | None,
        warehouse_code: str | None,
        store_id: int | None,
    ) -> FulfillmentAssignment:
        """Link a product, a warehouse and a store.

        Raises:
            InvalidInputError: A field is missing.
            NotFoundError: Product, store or active warehouse is missing.
            AlreadyExistsError: The triple already exists.
            LimitExceededError: A fan-out or breadth limit would be exceeded.
        """

    @abstractmethod
    async def delete_assignment(self, assignment_id: int) -> None:
        """Delete an assignment by id.

        Raises:
            NotFoundError: No assignment with this id.
        """

    @abstractmethod
    async def delete_assignment_by_triple(
        self,
        product_id: int | None,
        warehouse_code: str | None,
        store_id: int | None,
    ) -> None:
        """Delete the assignment matching the exact triple.

        Raises:
            InvalidInputError: A field is missing.
            NotFoundError: No matching assignment.
        """

    @abstractmethod
    async def get_assignment(self, assignment_id: int) -> FulfillmentAssignment:
        """Return an assignment by id.

        Raises:
            NotFoundError: No assignment with this id.
        """

    @abstractmethod
    async def list_assignments(
        self,
        store_id: int | None = None,
        warehouse_code: str | None = None,
        product_id: int | None = None,
    ) -> list[FulfillmentAssignment]:
        """Return assignments, optionally filtered."""


class StoreManagementPort(ABC):
    """Port for store mutations that are propagated to the legacy system."""

    @abstractmethod
    async def create_store(self, name: str, quantity_products_in_stock: int = 0) -> Store:
        """Create a store and publish a CREATED event after commit."""

    @abstractmethod
    async def update_store(
        self, store_id: int, name: str, quantity_products_in_stock: int
    ) -> Store:
        """Update a store and publish an UPDATED event after commit.

        Raises:
            NotFoundError: No store with this id.
        """
