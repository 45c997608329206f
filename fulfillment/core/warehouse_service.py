"""Warehouse service: implements WarehouseOperationsPort.

This is the warehouse lifecycle engine. It enforces per-location warehouse
count and aggregate capacity limits on create and replace, the stock/capacity
rule on create, and stock conservation on replace. Every mutation runs its
reads, checks and writes inside one unit of work.

Replace runs in one of two modes:

- two_phase: the old warehouse is archived before the new location's limits
  are re-checked, so its capacity no longer counts. If those checks fail, the
  archive is still committed and the failure is raised afterwards; callers
  must treat a failed replace as "the old unit is gone".
- atomic: the new location's limits are evaluated against the active set as
  it would look after the archive, before anything is written. A failure
  leaves the old warehouse active.
"""

import logging
from datetime import UTC, datetime
from typing import Literal, TypeAlias

from .errors import (
    AlreadyExistsError,
    InvalidStateError,
    LimitExceededError,
    NotFoundError,
    log_rejection,
)
from .models import Location, Warehouse
from .ports import (
    LocationResolverPort,
    UnitOfWorkPort,
    WarehouseOperationsPort,
    WarehouseStorePort,
)

logger = logging.getLogger(__name__)

ReplaceMode: TypeAlias = Literal["two_phase", "atomic"]


class WarehouseService(WarehouseOperationsPort):
    """Core implementation of WarehouseOperationsPort."""

    def __init__(
        self,
        store: WarehouseStorePort,
        locations: LocationResolverPort,
        unit_of_work: UnitOfWorkPort,
        replace_mode: ReplaceMode = "two_phase",
    ):
        """Initialize the warehouse service.

        Args:
            store: WarehouseStorePort implementation for persistence.
            locations: LocationResolverPort for location limits.
            unit_of_work: UnitOfWorkPort wrapping each mutation.
            replace_mode: "two_phase" or "atomic" replacement semantics.
        """
        if replace_mode not in ("two_phase", "atomic"):
            raise ValueError(f"Unknown replace mode: {replace_mode}")
        self.store = store
        self.locations = locations
        self.unit_of_work = unit_of_work
        self.replace_mode = replace_mode

    async def create_warehouse(self, warehouse: Warehouse) -> Warehouse:
        """Create a warehouse after checking code, location, limits and stock.

        Checks run in order and the first failure wins; nothing is written
        on a failing path.
        """
        code = warehouse.business_unit_code

        async with self.unit_of_work.transaction():
            if await self.store.find_by_code(code) is not None:
                logger.warning(
                    f"Rejected warehouse creation: code '{code}' already in use",
                    extra={"business_unit_code": code},
                )
                raise AlreadyExistsError(
                    f"A warehouse with business unit code '{code}' already exists.",
                    business_unit_code=code,
                )

            location = self._resolve_location(warehouse.location)

            active_at_location = await self.store.find_active_by_location(location.identification)
            violation = self._location_violation(warehouse, location, active_at_location)
            if violation is not None:
                logger.warning(
                    f"Rejected warehouse creation for '{code}': {violation.message}",
                    extra={"business_unit_code": code, "location": location.identification},
                )
                raise violation

            if warehouse.stock is not None and warehouse.stock > warehouse.capacity:
                raise log_rejection(
                    logger,
                    f"warehouse creation for '{code}'",
                    InvalidStateError(
                        f"Warehouse stock ({warehouse.stock}) cannot exceed "
                        f"warehouse capacity ({warehouse.capacity}).",
                        business_unit_code=code,
                        stock=warehouse.stock,
                        capacity=warehouse.capacity,
                    ),
                )

            warehouse.created_at = datetime.now(UTC)
            warehouse.archived_at = None
            await self.store.create(warehouse)

        logger.info(
            f"Created warehouse '{code}' at location '{warehouse.location}'",
            extra={
                "business_unit_code": code,
                "location": warehouse.location,
                "capacity": warehouse.capacity,
                "stock": warehouse.stock,
            },
        )
        return warehouse

    async def archive_warehouse(self, business_unit_code: str) -> Warehouse:
        """Archive the active warehouse with this code.

        The archived timestamp is stamped on the stored record, not on any
        caller-supplied reference. Capacity limits are never checked.
        """
        async with self.unit_of_work.transaction():
            existing = await self._require_active(business_unit_code)
            existing.archive(datetime.now(UTC))
            await self.store.update(existing)

        logger.info(
            f"Archived warehouse '{business_unit_code}'",
            extra={"business_unit_code": business_unit_code, "location": existing.location},
        )
        return existing

    async def replace_warehouse(self, warehouse: Warehouse) -> Warehouse:
        """Archive the active warehouse and create its successor under the same code.

        Raises:
            NotFoundError: No active warehouse with the code, or unknown location.
            InvalidStateError: New capacity cannot hold the existing stock, or
                the new stock differs from the existing stock.
            LimitExceededError: The new location is full. In two_phase mode the
                old warehouse has already been archived when this is raised.
        """
        code = warehouse.business_unit_code
        deferred_failure: LimitExceededError | None = None

        async with self.unit_of_work.transaction():
            existing = await self.store.find_by_code(code)
            if existing is None:
                raise log_rejection(
                    logger,
                    f"replacement of '{code}'",
                    NotFoundError(
                        f"No active warehouse found with business unit code '{code}' to replace.",
                        business_unit_code=code,
                    ),
                )

            existing_stock = existing.stock or 0
            if warehouse.capacity < existing_stock:
                raise log_rejection(
                    logger,
                    f"replacement of '{code}'",
                    InvalidStateError(
                        f"New warehouse capacity ({warehouse.capacity}) cannot accommodate "
                        f"the stock ({existing_stock}) from the warehouse being replaced.",
                        business_unit_code=code,
                        capacity=warehouse.capacity,
                        stock=existing_stock,
                    ),
                )

            if warehouse.stock != existing.stock:
                raise log_rejection(
                    logger,
                    f"replacement of '{code}'",
                    InvalidStateError(
                        f"New warehouse stock ({warehouse.stock}) must match the stock "
                        f"({existing.stock}) of the warehouse being replaced.",
                        business_unit_code=code,
                        stock=warehouse.stock,
                        expected_stock=existing.stock,
                    ),
                )

            location = self._resolve_location(warehouse.location)

            if self.replace_mode == "atomic":
                active_at_location = [
                    w
                    for w in await self.store.find_active_by_location(location.identification)
                    if w.business_unit_code != code
                ]
                violation = self._location_violation(warehouse, location, active_at_location)
                if violation is not None:
                    logger.warning(
                        f"Rejected replacement of '{code}': {violation.message}",
                        extra={"business_unit_code": code, "location": location.identification},
                    )
                    raise violation
                await self._archive_for_replacement(existing)
                await self._create_replacement(warehouse)
            else:
                await self._archive_for_replacement(existing)
                active_at_location = await self.store.find_active_by_location(
                    location.identification
                )
                deferred_failure = self._location_violation(
                    warehouse, location, active_at_location
                )
                if deferred_failure is None:
                    await self._create_replacement(warehouse)

        if deferred_failure is not None:
            logger.warning(
                f"Replacement of '{code}' failed after archiving the previous warehouse: "
                f"{deferred_failure.message}",
                extra={"business_unit_code": code, "location": warehouse.location},
            )
            raise deferred_failure

        logger.info(
            f"Replaced warehouse '{code}' at location '{warehouse.location}'",
            extra={
                "business_unit_code": code,
                "previous_location": existing.location,
                "location": warehouse.location,
                "capacity": warehouse.capacity,
            },
        )
        return warehouse

    async def get_warehouse(self, business_unit_code: str) -> Warehouse:
        """Return the active warehouse with this code."""
        return await self._require_active(business_unit_code)

    async def list_warehouses(self) -> list[Warehouse]:
        """Return every active warehouse."""
        warehouses = await self.store.get_all_active()
        logger.debug("Listed active warehouses", extra={"count": len(warehouses)})
        return warehouses

    async def _require_active(self, business_unit_code: str) -> Warehouse:
        warehouse = await self.store.find_by_code(business_unit_code)
        if warehouse is None:
            raise log_rejection(
                logger,
                f"access to warehouse '{business_unit_code}'",
                NotFoundError(
                    f"Warehouse with business unit code '{business_unit_code}' not found.",
                    business_unit_code=business_unit_code,
                ),
            )
        return warehouse

    def _resolve_location(self, identifier: str) -> Location:
        location = self.locations.resolve(identifier)
        if location is None:
            raise log_rejection(
                logger,
                f"warehouse location '{identifier}'",
                NotFoundError(
                    f"Location '{identifier}' is not a valid location.",
                    location=identifier,
                ),
            )
        return location

    @staticmethod
    def _location_violation(
        warehouse: Warehouse,
        location: Location,
        active_at_location: list[Warehouse],
    ) -> LimitExceededError | None:
        """Return the first location limit the warehouse would break, or None."""
        current_count = len(active_at_location)
        if current_count >= location.max_number_of_warehouses:
            return LimitExceededError(
                f"Maximum number of warehouses ({location.max_number_of_warehouses}) "
                f"already reached at location '{location.identification}'.",
                limit=location.max_number_of_warehouses,
                current=current_count,
                constraint="warehouses_per_location",
                location=location.identification,
            )

        used_capacity = sum(w.capacity for w in active_at_location)
        if used_capacity + warehouse.capacity > location.max_capacity:
            return LimitExceededError(
                f"Warehouse capacity ({warehouse.capacity}) would exceed the maximum "
                f"capacity ({location.max_capacity}) for location "
                f"'{location.identification}'. Current used capacity: {used_capacity}.",
                limit=location.max_capacity,
                current=used_capacity,
                constraint="capacity_per_location",
                location=location.identification,
                requested_capacity=warehouse.capacity,
            )

        return None

    async def _archive_for_replacement(self, existing: Warehouse) -> None:
        existing.archive(datetime.now(UTC))
        await self.store.update(existing)
        logger.info(
            f"Archived warehouse '{existing.business_unit_code}' for replacement",
            extra={"business_unit_code": existing.business_unit_code},
        )

    async def _create_replacement(self, warehouse: Warehouse) -> None:
        warehouse.created_at = datetime.now(UTC)
        warehouse.archived_at = None
        await self.store.create(warehouse)
