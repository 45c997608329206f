"""Core domain logic for the fulfillment system.

This package contains zero external dependencies and represents
the pure business logic of the application. All adapters and
external integrations are handled by the adapters package.
"""

from .errors import (
    AlreadyExistsError,
    ErrorKind,
    FulfillmentError,
    InvalidInputError,
    InvalidStateError,
    LimitExceededError,
    NotFoundError,
)
from .models import (
    AssignmentCounts,
    AssignmentRequest,
    FulfillmentAssignment,
    LimitPolicy,
    Location,
    Product,
    Store,
    StoreEvent,
    StoreEventType,
    Warehouse,
    WarehouseStatus,
)

__all__ = [
    "AlreadyExistsError",
    "AssignmentCounts",
    "AssignmentRequest",
    "ErrorKind",
    "FulfillmentAssignment",
    "FulfillmentError",
    "InvalidInputError",
    "InvalidStateError",
    "LimitExceededError",
    "LimitPolicy",
    "Location",
    "NotFoundError",
    "Product",
    "Store",
    "StoreEvent",
    "StoreEventType",
    "Warehouse",
    "WarehouseStatus",
]
