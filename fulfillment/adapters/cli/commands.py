"""CLI command implementations for fulfillment management.

Provides human-initiated actions through command-line interface.

This adapter maps CLI commands to the driving ports (WarehouseOperationsPort,
FulfillmentPort, StoreManagementPort). It handles CLI-specific formatting and
renders classified failures as result dictionaries.
"""

import logging
from typing import Any

from fulfillment.core.errors import FulfillmentError
from fulfillment.core.models import FulfillmentAssignment, Location, Store, Warehouse
from fulfillment.core.ports import (
    FulfillmentPort,
    LocationResolverPort,
    StoreManagementPort,
    WarehouseOperationsPort,
)

logger = logging.getLogger(__name__)


def warehouse_to_dict(warehouse: Warehouse) -> dict[str, Any]:
    """Render a warehouse for CLI output."""
    return {
        "business_unit_code": warehouse.business_unit_code,
        "location": warehouse.location,
        "capacity": warehouse.capacity,
        "stock": warehouse.stock,
        "status": warehouse.status.value,
        "created_at": warehouse.created_at.isoformat() if warehouse.created_at else None,
        "archived_at": warehouse.archived_at.isoformat() if warehouse.archived_at else None,
    }


def assignment_to_dict(assignment: FulfillmentAssignment) -> dict[str, Any]:
    """Render a fulfillment assignment for CLI output."""
    return {
        "id": assignment.id,
        "product_id": assignment.product_id,
        "warehouse_code": assignment.warehouse_code,
        "store_id": assignment.store_id,
        "created_at": assignment.created_at.isoformat(),
    }


def location_to_dict(location: Location) -> dict[str, Any]:
    return {
        "identification": location.identification,
        "max_number_of_warehouses": location.max_number_of_warehouses,
        "max_capacity": location.max_capacity,
    }


def store_to_dict(store: Store) -> dict[str, Any]:
    return {
        "id": store.id,
        "name": store.name,
        "quantity_products_in_stock": store.quantity_products_in_stock,
    }


class CLICommandHandler:
    """Handles CLI commands by delegating to the driving ports.

    Every method returns a dictionary with a "status" of "success" or
    "error". Classified failures never escape as exceptions.
    """

    def __init__(
        self,
        warehouses: WarehouseOperationsPort,
        fulfillment: FulfillmentPort,
        stores: StoreManagementPort,
        locations: LocationResolverPort,
    ):
        """Initialize the CLI command handler.

        Args:
            warehouses: WarehouseOperationsPort for lifecycle commands.
            fulfillment: FulfillmentPort for assignment commands.
            stores: StoreManagementPort for store commands.
            locations: LocationResolverPort for listing locations.
        """
        self.warehouses = warehouses
        self.fulfillment = fulfillment
        self.stores = stores
        self.locations = locations

    @staticmethod
    def _error(operation: str, error: FulfillmentError, **context: Any) -> dict[str, Any]:
        logger.error(f"Failed to {operation.replace('_', ' ')}: {error}")
        result: dict[str, Any] = {"status": "error", "operation": operation}
        result.update(context)
        result.update(error.to_dict())
        return result

    # ========================================================================
    # Warehouses
    # ========================================================================

    async def list_warehouses(self) -> dict[str, Any]:
        """List all active warehouses."""
        warehouses = await self.warehouses.list_warehouses()
        return {
            "status": "success",
            "operation": "list_warehouses",
            "count": len(warehouses),
            "data": [warehouse_to_dict(w) for w in warehouses],
        }

    async def get_warehouse(self, business_unit_code: str) -> dict[str, Any]:
        """Retrieve an active warehouse by business-unit code."""
        try:
            warehouse = await self.warehouses.get_warehouse(business_unit_code)
            return {
                "status": "success",
                "operation": "get_warehouse",
                "data": warehouse_to_dict(warehouse),
            }
        except FulfillmentError as e:
            return self._error("get_warehouse", e, business_unit_code=business_unit_code)

    async def create_warehouse(
        self,
        business_unit_code: str,
        location: str,
        capacity: int,
        stock: int | None = None,
        verbose: bool = False,
    ) -> dict[str, Any]:
        """Create a warehouse via CLI.

        Args:
            business_unit_code: Code of the new warehouse.
            location: Location identifier.
            capacity: Warehouse capacity.
            stock: Optional initial stock.
            verbose: If True, log additional information.

        Returns:
            Dictionary with status and the created warehouse or error details.
        """
        try:
            warehouse = await self.warehouses.create_warehouse(
                Warehouse(
                    business_unit_code=business_unit_code,
                    location=location,
                    capacity=capacity,
                    stock=stock,
                )
            )

            if verbose:
                logger.info(
                    f"Created warehouse {business_unit_code}",
                    extra={"location": location, "verbose": True},
                )

            return {
                "status": "success",
                "operation": "create_warehouse",
                "message": f"Warehouse {business_unit_code} created",
                "data": warehouse_to_dict(warehouse),
            }
        except FulfillmentError as e:
            return self._error("create_warehouse", e, business_unit_code=business_unit_code)

    async def archive_warehouse(self, business_unit_code: str) -> dict[str, Any]:
        """Archive an active warehouse via CLI."""
        try:
            warehouse = await self.warehouses.archive_warehouse(business_unit_code)
            return {
                "status": "success",
                "operation": "archive_warehouse",
                "message": f"Warehouse {business_unit_code} archived",
                "data": warehouse_to_dict(warehouse),
            }
        except FulfillmentError as e:
            return self._error("archive_warehouse", e, business_unit_code=business_unit_code)

    async def replace_warehouse(
        self,
        business_unit_code: str,
        location: str,
        capacity: int,
        stock: int | None = None,
    ) -> dict[str, Any]:
        """Replace an active warehouse under the same business-unit code.

        Returns:
            Dictionary with status and the new warehouse or error details.
        """
        try:
            warehouse = await self.warehouses.replace_warehouse(
                Warehouse(
                    business_unit_code=business_unit_code,
                    location=location,
                    capacity=capacity,
                    stock=stock,
                )
            )
            return {
                "status": "success",
                "operation": "replace_warehouse",
                "message": f"Warehouse {business_unit_code} replaced",
                "data": warehouse_to_dict(warehouse),
            }
        except FulfillmentError as e:
            return self._error("replace_warehouse", e, business_unit_code=business_unit_code)

    async def list_locations(self) -> dict[str, Any]:
        """List the known locations and their limits."""
        locations = self.locations.all()
        return {
            "status": "success",
            "operation": "list_locations",
            "count": len(locations),
            "data": [location_to_dict(loc) for loc in locations],
        }

    # ========================================================================
    # Fulfillment assignments
    # ========================================================================

    async def list_assignments(
        self,
        store_id: int | None = None,
        warehouse_code: str | None = None,
        product_id: int | None = None,
    ) -> dict[str, Any]:
        """List assignments, optionally filtered."""
        assignments = await self.fulfillment.list_assignments(
            store_id=store_id, warehouse_code=warehouse_code, product_id=product_id
        )
        return {
            "status": "success",
            "operation": "list_assignments",
            "count": len(assignments),
            "data": [assignment_to_dict(a) for a in assignments],
        }

    async def get_assignment(self, assignment_id: int) -> dict[str, Any]:
        try:
            assignment = await self.fulfillment.get_assignment(assignment_id)
            return {
                "status": "success",
                "operation": "get_assignment",
                "data": assignment_to_dict(assignment),
            }
        except FulfillmentError as e:
            return self._error("get_assignment", e, assignment_id=assignment_id)

    async def create_assignment(
        self,
        product_id: int | None,
        warehouse_code: str | None,
        store_id: int | None,
    ) -> dict[str, Any]:
        """Link a product, a warehouse and a store via CLI."""
        try:
            assignment = await self.fulfillment.create_assignment(
                product_id, warehouse_code, store_id
            )
            return {
                "status": "success",
                "operation": "create_assignment",
                "message": (
                    f"Product {product_id} assigned to warehouse "
                    f"{warehouse_code} for store {store_id}"
                ),
                "data": assignment_to_dict(assignment),
            }
        except FulfillmentError as e:
            return self._error("create_assignment", e)

    async def delete_assignment(
        self,
        assignment_id: int | None = None,
        product_id: int | None = None,
        warehouse_code: str | None = None,
        store_id: int | None = None,
    ) -> dict[str, Any]:
        """Delete an assignment by id, or by exact triple when no id is given."""
        try:
            if assignment_id is not None:
                await self.fulfillment.delete_assignment(assignment_id)
                message = f"Fulfillment assignment {assignment_id} deleted"
            else:
                await self.fulfillment.delete_assignment_by_triple(
                    product_id, warehouse_code, store_id
                )
                message = (
                    f"Fulfillment assignment for product {product_id}, "
                    f"warehouse {warehouse_code}, store {store_id} deleted"
                )
            return {"status": "success", "operation": "delete_assignment", "message": message}
        except FulfillmentError as e:
            return self._error("delete_assignment", e)

    # ========================================================================
    # Stores
    # ========================================================================

    async def create_store(self, name: str, quantity_products_in_stock: int = 0) -> dict[str, Any]:
        try:
            store = await self.stores.create_store(name, quantity_products_in_stock)
            return {
                "status": "success",
                "operation": "create_store",
                "message": f"Store {store.name} created",
                "data": store_to_dict(store),
            }
        except FulfillmentError as e:
            return self._error("create_store", e, name=name)

    async def update_store(
        self, store_id: int, name: str, quantity_products_in_stock: int
    ) -> dict[str, Any]:
        try:
            store = await self.stores.update_store(store_id, name, quantity_products_in_stock)
            return {
                "status": "success",
                "operation": "update_store",
                "message": f"Store {store_id} updated",
                "data": store_to_dict(store),
            }
        except FulfillmentError as e:
            return self._error("update_store", e, store_id=store_id)
