"""Fulfillment service: implements FulfillmentPort.

Links a product, a warehouse and a store after checking that all three
exist, that the triple is new, and that none of the cardinality limits in
constraints.py would be exceeded.
"""

import logging
from datetime import UTC, datetime

from .constraints import first_violation
from .errors import AlreadyExistsError, InvalidInputError, NotFoundError, log_rejection
from .models import (
    AssignmentCounts,
    AssignmentRequest,
    FulfillmentAssignment,
    LimitPolicy,
)
from .ports import (
    AssignmentStorePort,
    FulfillmentPort,
    ProductLookupPort,
    StoreRepositoryPort,
    UnitOfWorkPort,
    WarehouseStorePort,
)

logger = logging.getLogger(__name__)


class FulfillmentService(FulfillmentPort):
    """Core implementation of FulfillmentPort.

    Coordinates existence checks against products, stores and warehouses
    with the aggregate counts held by the assignment store.
    """

    def __init__(
        self,
        assignments: AssignmentStorePort,
        warehouses: WarehouseStorePort,
        products: ProductLookupPort,
        stores: StoreRepositoryPort,
        unit_of_work: UnitOfWorkPort,
        policy: LimitPolicy | None = None,
    ):
        """Initialize the fulfillment service.

        Args:
            assignments: AssignmentStorePort for persistence and aggregates.
            warehouses: WarehouseStorePort for active-warehouse checks.
            products: ProductLookupPort for product existence.
            stores: StoreRepositoryPort for store existence.
            unit_of_work: UnitOfWorkPort wrapping each mutation.
            policy: Cardinality limits. Defaults to 2 / 3 / 5.
        """
        self.assignments = assignments
        self.warehouses = warehouses
        self.products = products
        self.stores = stores
        self.unit_of_work = unit_of_work
        self.policy = policy or LimitPolicy()

    async def create_assignment(
        self,
        product_id: int | None,
        warehouse_code: str | None,
        store_id: int | None,
    ) -> FulfillmentAssignment:
        """Create an assignment if every check passes.

        Order: request fields, product, store, active warehouse, duplicate
        triple, then constraints A, B, C. The first failure is raised and
        nothing is written.
        """
        self._validate_request(product_id, warehouse_code, store_id, "fulfillment assignment")
        assert product_id is not None and warehouse_code is not None and store_id is not None

        async with self.unit_of_work.transaction():
            if await self.products.get_by_id(product_id) is None:
                raise log_rejection(
                    logger,
                    "fulfillment assignment",
                    NotFoundError(
                        f"Product with id {product_id} does not exist.",
                        product_id=product_id,
                    ),
                )

            if await self.stores.get_by_id(store_id) is None:
                raise log_rejection(
                    logger,
                    "fulfillment assignment",
                    NotFoundError(
                        f"Store with id {store_id} does not exist.",
                        store_id=store_id,
                    ),
                )

            if await self.warehouses.find_by_code(warehouse_code) is None:
                raise log_rejection(
                    logger,
                    "fulfillment assignment",
                    NotFoundError(
                        f"Warehouse with business unit code '{warehouse_code}' "
                        f"does not exist or is archived.",
                        warehouse_code=warehouse_code,
                    ),
                )

            if await self.assignments.exists(product_id, warehouse_code, store_id):
                raise log_rejection(
                    logger,
                    "fulfillment assignment",
                    AlreadyExistsError(
                        "This fulfillment assignment already exists.",
                        product_id=product_id,
                        warehouse_code=warehouse_code,
                        store_id=store_id,
                    ),
                )

            counts = await self._collect_counts(product_id, warehouse_code, store_id)
            violation = first_violation(
                counts, self.policy, product_id, warehouse_code, store_id
            )
            if violation is not None:
                logger.warning(
                    f"Rejected fulfillment assignment: {violation.message}",
                    extra={
                        "product_id": product_id,
                        "warehouse_code": warehouse_code,
                        "store_id": store_id,
                        "limit": violation.limit,
                        "current": violation.current,
                    },
                )
                raise violation

            assignment = await self.assignments.create(
                FulfillmentAssignment(
                    product_id=product_id,
                    warehouse_code=warehouse_code,
                    store_id=store_id,
                    created_at=datetime.now(UTC),
                )
            )

        logger.info(
            f"Created fulfillment assignment: Product {product_id} -> "
            f"Warehouse '{warehouse_code}' -> Store {store_id}",
            extra={"assignment_id": assignment.id},
        )
        return assignment

    async def delete_assignment(self, assignment_id: int) -> None:
        """Delete an assignment by id. No limits are re-checked."""
        async with self.unit_of_work.transaction():
            if not await self.assignments.delete(assignment_id):
                raise log_rejection(
                    logger,
                    "assignment deletion",
                    NotFoundError(
                        f"Fulfillment assignment with id {assignment_id} not found.",
                        assignment_id=assignment_id,
                    ),
                )

        logger.info(
            f"Deleted fulfillment assignment with id {assignment_id}",
            extra={"assignment_id": assignment_id},
        )

    async def delete_assignment_by_triple(
        self,
        product_id: int | None,
        warehouse_code: str | None,
        store_id: int | None,
    ) -> None:
        """Delete the assignment matching the exact triple."""
        self._validate_request(product_id, warehouse_code, store_id, "assignment deletion")
        assert product_id is not None and warehouse_code is not None and store_id is not None

        async with self.unit_of_work.transaction():
            deleted = await self.assignments.delete_by_triple(
                product_id, warehouse_code, store_id
            )
            if deleted == 0:
                raise log_rejection(
                    logger,
                    "assignment deletion",
                    NotFoundError(
                        "Fulfillment assignment not found.",
                        product_id=product_id,
                        warehouse_code=warehouse_code,
                        store_id=store_id,
                    ),
                )

        logger.info(
            f"Deleted fulfillment assignment: Product {product_id} -> "
            f"Warehouse '{warehouse_code}' -> Store {store_id}"
        )

    async def get_assignment(self, assignment_id: int) -> FulfillmentAssignment:
        """Return an assignment by id."""
        assignment = await self.assignments.get_by_id(assignment_id)
        if assignment is None:
            raise log_rejection(
                logger,
                "assignment lookup",
                NotFoundError(
                    f"Fulfillment assignment with id {assignment_id} not found.",
                    assignment_id=assignment_id,
                ),
            )
        return assignment

    async def list_assignments(
        self,
        store_id: int | None = None,
        warehouse_code: str | None = None,
        product_id: int | None = None,
    ) -> list[FulfillmentAssignment]:
        """Return assignments, optionally filtered by store, warehouse or product."""
        return await self.assignments.find_all(
            store_id=store_id, warehouse_code=warehouse_code, product_id=product_id
        )

    @staticmethod
    def _validate_request(
        product_id: int | None,
        warehouse_code: str | None,
        store_id: int | None,
        operation: str,
    ) -> None:
        try:
            AssignmentRequest(product_id, warehouse_code, store_id).validate()
        except InvalidInputError as e:
            raise log_rejection(logger, operation, e)

    async def _collect_counts(
        self, product_id: int, warehouse_code: str, store_id: int
    ) -> AssignmentCounts:
        return AssignmentCounts(
            warehouses_for_product_at_store=await self.assignments.count_warehouses_for_product_at_store(
                product_id, store_id
            ),
            warehouses_for_store=await self.assignments.count_warehouses_for_store(store_id),
            products_in_warehouse=await self.assignments.count_products_in_warehouse(
                warehouse_code
            ),
            warehouse_linked_to_store=await self.assignments.exists_warehouse_at_store(
                warehouse_code, store_id
            ),
            product_in_warehouse=await self.assignments.exists_product_at_warehouse(
                product_id, warehouse_code
            ),
        )
