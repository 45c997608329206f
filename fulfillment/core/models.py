"""Domain models for the fulfillment system.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from .errors import InvalidInputError, InvalidStateError


def _is_count(value: object) -> bool:
    """True for a non-negative int. bool is rejected even though it subclasses int."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


@dataclass(frozen=True)
class Location:
    """A static physical site with fixed warehouse-count and capacity limits."""

    identification: str
    max_number_of_warehouses: int
    max_capacity: int

    def __post_init__(self) -> None:
        """Validate location invariants on creation."""
        if not self.identification or not self.identification.strip():
            raise ValueError("identification must be a non-empty string")
        if self.max_number_of_warehouses < 0:
            raise ValueError(
                f"max_number_of_warehouses must be non-negative, "
                f"got {self.max_number_of_warehouses}"
            )
        if self.max_capacity < 0:
            raise ValueError(
                f"max_capacity must be non-negative, got {self.max_capacity}"
            )


class WarehouseStatus(Enum):
    """Lifecycle states for a warehouse.

    - ACTIVE: archived_at is unset; counts against its location's limits
    - ARCHIVED: soft-deleted; its business-unit code may be reused
    """

    ACTIVE = "active"
    ARCHIVED = "archived"


@dataclass
class Warehouse:
    """A fulfillment unit identified by its business-unit code.

    Lifecycle:
        ACTIVE → ARCHIVED (archive). Archived warehouses are never
        re-activated; a replacement is a new record under the same code.

    Note: This dataclass is intentionally mutable so the lifecycle service
    can stamp created_at and archived_at on the record it persists.
    """

    business_unit_code: str
    location: str
    capacity: int
    stock: int | None = None
    created_at: datetime | None = None
    archived_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate required fields on creation or deserialization."""
        if not isinstance(self.business_unit_code, str) or not self.business_unit_code.strip():
            raise InvalidInputError("businessUnitCode is required.", field="business_unit_code")
        if not isinstance(self.location, str) or not self.location.strip():
            raise InvalidInputError("location is required.", field="location")
        if self.capacity is None:
            raise InvalidInputError("capacity is required.", field="capacity")
        if not _is_count(self.capacity):
            raise InvalidInputError(
                f"capacity must be a non-negative integer, got {self.capacity!r}.",
                field="capacity",
            )
        if self.stock is not None and not _is_count(self.stock):
            raise InvalidInputError(
                f"stock must be a non-negative integer, got {self.stock!r}.",
                field="stock",
            )

    @property
    def status(self) -> WarehouseStatus:
        """Tagged lifecycle view of archived_at."""
        if self.archived_at is None:
            return WarehouseStatus.ACTIVE
        return WarehouseStatus.ARCHIVED

    @property
    def is_active(self) -> bool:
        return self.status == WarehouseStatus.ACTIVE

    def archive(self, at: datetime) -> None:
        """Transition the warehouse to ARCHIVED at the given instant."""
        if self.status == WarehouseStatus.ARCHIVED:
            raise InvalidStateError(
                f"Warehouse '{self.business_unit_code}' is already archived.",
                business_unit_code=self.business_unit_code,
            )
        self.archived_at = at


@dataclass(frozen=True)
class FulfillmentAssignment:
    """A product fulfilled for a store by a warehouse.

    The (product_id, warehouse_code, store_id) triple is unique. Assignments
    are never updated in place; they are created and deleted.
    """

    product_id: int
    warehouse_code: str
    store_id: int
    created_at: datetime
    id: int | None = None  # surrogate key, assigned by the store

    @property
    def triple(self) -> tuple[int, str, int]:
        return (self.product_id, self.warehouse_code, self.store_id)


@dataclass(frozen=True)
class AssignmentRequest:
    """Inbound request to link a product, a warehouse and a store.

    Fields are optional so that missing values can be reported as
    InvalidInput instead of failing at construction.
    """

    product_id: int | None
    warehouse_code: str | None
    store_id: int | None

    def validate(self) -> None:
        """Raise InvalidInputError for the first missing field."""
        if self.product_id is None:
            raise InvalidInputError("productId is required.", field="product_id")
        if not isinstance(self.warehouse_code, str) or not self.warehouse_code.strip():
            raise InvalidInputError(
                "warehouseBusinessUnitCode is required.", field="warehouse_code"
            )
        if self.store_id is None:
            raise InvalidInputError("storeId is required.", field="store_id")


@dataclass(frozen=True)
class AssignmentCounts:
    """Aggregates an assignment creation is judged against.

    Counts are of distinct warehouses / products, never raw rows.
    """

    warehouses_for_product_at_store: int
    warehouses_for_store: int
    products_in_warehouse: int
    warehouse_linked_to_store: bool
    product_in_warehouse: bool


@dataclass(frozen=True)
class LimitPolicy:
    """Cardinality limits for fulfillment assignments."""

    max_warehouses_per_product_per_store: int = 2
    max_warehouses_per_store: int = 3
    max_products_per_warehouse: int = 5

    def __post_init__(self) -> None:
        """Validate that every limit is positive."""
        for name in (
            "max_warehouses_per_product_per_store",
            "max_warehouses_per_store",
            "max_products_per_warehouse",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")


@dataclass(frozen=True)
class Product:
    """A product that can be fulfilled for stores."""

    id: int
    name: str
    description: str | None = None
    price: Decimal | None = None
    stock: int = 0


@dataclass
class Store:
    """A retail store receiving fulfilled products."""

    name: str
    quantity_products_in_stock: int = 0
    id: int | None = None  # assigned by the store adapter on creation

    def __post_init__(self) -> None:
        """Validate store invariants on creation."""
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidInputError("Store name is required.", field="name")
        if not _is_count(self.quantity_products_in_stock):
            raise InvalidInputError(
                f"quantityProductsInStock must be a non-negative integer, "
                f"got {self.quantity_products_in_stock!r}",
                field="quantity_products_in_stock",
            )


class StoreEventType(Enum):
    """Kinds of store change propagated to the legacy store manager."""

    CREATED = "created"
    UPDATED = "updated"


@dataclass(frozen=True)
class StoreEvent:
    """A committed store change, published after the transaction succeeds."""

    store: Store
    type: StoreEventType
    occurred_at: datetime
