"""Classified failures raised by the core services.

Every failure a caller can observe carries a kind, a human-readable
message, and structured details (offending ids, limit values, current
counts) so adapters can render an actionable response without parsing
message text.

All errors derive from ValueError, so adapters that already treat
ValueError as "the request was rejected" keep working unchanged.
"""

import logging
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any, TypeVar


class ErrorKind(Enum):
    """Caller-visible failure classification."""

    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    LIMIT_EXCEEDED = "limit_exceeded"
    INVALID_STATE = "invalid_state"
    INVALID_INPUT = "invalid_input"


class FulfillmentError(ValueError):
    """Base class for every classified core failure."""

    kind: ErrorKind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Mapping[str, Any] = MappingProxyType(dict(details))

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a dictionary for adapter responses."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": dict(self.details),
        }


class NotFoundError(FulfillmentError):
    """Referenced warehouse, assignment, product, store or location is missing."""

    kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(FulfillmentError):
    """Duplicate business-unit code or duplicate assignment triple."""

    kind = ErrorKind.ALREADY_EXISTS


class LimitExceededError(FulfillmentError):
    """A cardinality or capacity limit would be violated."""

    kind = ErrorKind.LIMIT_EXCEEDED

    def __init__(self, message: str, limit: int, current: int, **details: Any) -> None:
        super().__init__(message, limit=limit, current=current, **details)
        self.limit = limit
        self.current = current


class InvalidStateError(FulfillmentError):
    """Stock and capacity values are inconsistent for the requested transition."""

    kind = ErrorKind.INVALID_STATE


class InvalidInputError(FulfillmentError):
    """A required request field is missing, blank or malformed."""

    kind = ErrorKind.INVALID_INPUT


E = TypeVar("E", bound=FulfillmentError)


def log_rejection(logger: logging.Logger, operation: str, error: E) -> E:
    """Log a failed check at WARNING and hand the error back for raising.

    Details are nested under one key so they cannot collide with
    LogRecord attributes such as "name".
    """
    logger.warning(
        f"Rejected {operation}: {error.message}",
        extra={"error_kind": error.kind.value, "details": dict(error.details)},
    )
    return error


__all__ = [
    "AlreadyExistsError",
    "ErrorKind",
    "FulfillmentError",
    "InvalidInputError",
    "InvalidStateError",
    "LimitExceededError",
    "NotFoundError",
    "log_rejection",
]
