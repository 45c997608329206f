"""Unit tests for the fulfillment assignment service."""

import logging
from datetime import UTC, datetime

import pytest

from fulfillment.core.errors import (
    AlreadyExistsError,
    InvalidInputError,
    LimitExceededError,
    NotFoundError,
)
from fulfillment.core.fulfillment_service import FulfillmentService
from fulfillment.core.models import LimitPolicy, Product, Store, Warehouse
from fulfillment.tests.fakes import (
    FakeAssignmentStorePort,
    FakeProductLookupPort,
    FakeStoreRepositoryPort,
    FakeUnitOfWork,
    FakeWarehouseStorePort,
)

# ============================================================================
# Test Fixtures
# ============================================================================

CREATED = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def assignments() -> FakeAssignmentStorePort:
    return FakeAssignmentStorePort()


@pytest.fixture
def warehouses() -> FakeWarehouseStorePort:
    archived = Warehouse("MWH.099", "VETSBY-001", 10, 0, created_at=CREATED)
    archived.archive(CREATED)
    return FakeWarehouseStorePort(
        [
            Warehouse("MWH.001", "ZWOLLE-001", 100, 10, created_at=CREATED),
            Warehouse("MWH.012", "AMSTERDAM-001", 50, 5, created_at=CREATED),
            Warehouse("MWH.023", "TILBURG-001", 30, 27, created_at=CREATED),
            Warehouse("MWH.030", "AMSTERDAM-002", 30, 0, created_at=CREATED),
            archived,
        ]
    )


@pytest.fixture
def products() -> FakeProductLookupPort:
    return FakeProductLookupPort([Product(id=i, name=f"PRODUCT-{i}") for i in range(1, 7)])


@pytest.fixture
def stores() -> FakeStoreRepositoryPort:
    return FakeStoreRepositoryPort(
        [
            Store(name="TONSTAD", quantity_products_in_stock=10, id=1),
            Store(name="KALLAX", quantity_products_in_stock=5, id=2),
            Store(name="BESTÅ", quantity_products_in_stock=3, id=3),
        ]
    )


@pytest.fixture
def unit_of_work(assignments: FakeAssignmentStorePort) -> FakeUnitOfWork:
    return FakeUnitOfWork(assignments)


@pytest.fixture
def service(
    assignments: FakeAssignmentStorePort,
    warehouses: FakeWarehouseStorePort,
    products: FakeProductLookupPort,
    stores: FakeStoreRepositoryPort,
    unit_of_work: FakeUnitOfWork,
) -> FulfillmentService:
    return FulfillmentService(assignments, warehouses, products, stores, unit_of_work)


# ============================================================================
# Create: existence and input
# ============================================================================


@pytest.mark.asyncio
class TestCreateAssignmentPreconditions:
    """Tests for request validation and existence checks."""

    async def test_creates_assignment(
        self,
        service: FulfillmentService,
        assignments: FakeAssignmentStorePort,
        unit_of_work: FakeUnitOfWork,
    ) -> None:
        assignment = await service.create_assignment(1, "MWH.001", 1)

        assert assignment.id is not None
        assert assignment.triple == (1, "MWH.001", 1)
        assert assignment.created_at is not None
        assert await assignments.exists(1, "MWH.001", 1)
        assert unit_of_work.commits == 1

    @pytest.mark.parametrize(
        "product_id,warehouse_code,store_id,message",
        [
            (None, "MWH.001", 1, "productId is required"),
            (1, None, 1, "warehouseBusinessUnitCode is required"),
            (1, "   ", 1, "warehouseBusinessUnitCode is required"),
            (1, "MWH.001", None, "storeId is required"),
        ],
    )
    async def test_invalid_input_rejected_before_lookups(
        self,
        service: FulfillmentService,
        products: FakeProductLookupPort,
        unit_of_work: FakeUnitOfWork,
        product_id: int | None,
        warehouse_code: str | None,
        store_id: int | None,
        message: str,
    ) -> None:
        with pytest.raises(InvalidInputError, match=message):
            await service.create_assignment(product_id, warehouse_code, store_id)

        assert products.get_by_id_calls == []
        assert unit_of_work.commits == 0

    async def test_unknown_product(self, service: FulfillmentService) -> None:
        with pytest.raises(NotFoundError, match="Product with id 99 does not exist") as exc_info:
            await service.create_assignment(99, "MWH.001", 1)

        assert exc_info.value.details["product_id"] == 99

    async def test_unknown_store(self, service: FulfillmentService) -> None:
        with pytest.raises(NotFoundError, match="Store with id 99 does not exist"):
            await service.create_assignment(1, "MWH.001", 99)

    async def test_unknown_warehouse(self, service: FulfillmentService) -> None:
        with pytest.raises(NotFoundError, match="does not exist or is archived"):
            await service.create_assignment(1, "MWH.999", 1)

    async def test_archived_warehouse(self, service: FulfillmentService) -> None:
        with pytest.raises(NotFoundError, match="'MWH.099'"):
            await service.create_assignment(1, "MWH.099", 1)

    async def test_product_checked_before_store(self, service: FulfillmentService) -> None:
        with pytest.raises(NotFoundError, match="Product"):
            await service.create_assignment(99, "MWH.999", 99)

    async def test_duplicate_triple_rejected(
        self, service: FulfillmentService, assignments: FakeAssignmentStorePort
    ) -> None:
        await service.create_assignment(1, "MWH.001", 1)

        with pytest.raises(AlreadyExistsError, match="already exists"):
            await service.create_assignment(1, "MWH.001", 1)

        assert len(await assignments.find_all()) == 1

    @pytest.mark.parametrize(
        "product_id,warehouse_code,store_id,error_kind",
        [
            (None, "MWH.001", 1, "invalid_input"),
            (99, "MWH.001", 1, "not_found"),
            (1, "MWH.001", 99, "not_found"),
            (1, "MWH.099", 1, "not_found"),
        ],
    )
    async def test_precondition_failures_logged(
        self,
        service: FulfillmentService,
        caplog: pytest.LogCaptureFixture,
        product_id: int | None,
        warehouse_code: str,
        store_id: int,
        error_kind: str,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="fulfillment.core.fulfillment_service"):
            with pytest.raises((InvalidInputError, NotFoundError)):
                await service.create_assignment(product_id, warehouse_code, store_id)

        [record] = caplog.records
        assert record.levelno == logging.WARNING
        assert record.getMessage().startswith("Rejected fulfillment assignment")
        assert record.error_kind == error_kind

    async def test_duplicate_triple_logged(
        self, service: FulfillmentService, caplog: pytest.LogCaptureFixture
    ) -> None:
        await service.create_assignment(1, "MWH.001", 1)

        with caplog.at_level(logging.WARNING, logger="fulfillment.core.fulfillment_service"):
            with pytest.raises(AlreadyExistsError):
                await service.create_assignment(1, "MWH.001", 1)

        assert "Rejected fulfillment assignment: This fulfillment assignment already exists." in caplog.text


# ============================================================================
# Create: cardinality constraints
# ============================================================================


@pytest.mark.asyncio
class TestCreateAssignmentLimits:
    """Tests for constraints A, B and C and their distinct guards."""

    async def test_third_warehouse_for_product_at_store(
        self, service: FulfillmentService, assignments: FakeAssignmentStorePort
    ) -> None:
        await service.create_assignment(1, "MWH.001", 1)
        await service.create_assignment(1, "MWH.012", 1)

        with pytest.raises(LimitExceededError, match="2") as exc_info:
            await service.create_assignment(1, "MWH.023", 1)

        assert exc_info.value.details["constraint"] == "warehouses_per_product_per_store"
        assert exc_info.value.limit == 2
        assert exc_info.value.current == 2
        assert not await assignments.exists(1, "MWH.023", 1)

    async def test_duplicate_reported_before_limits(self, service: FulfillmentService) -> None:
        await service.create_assignment(1, "MWH.001", 1)
        await service.create_assignment(1, "MWH.012", 1)

        with pytest.raises(AlreadyExistsError):
            await service.create_assignment(1, "MWH.012", 1)

    async def test_fourth_warehouse_for_store(self, service: FulfillmentService) -> None:
        await service.create_assignment(1, "MWH.001", 1)
        await service.create_assignment(2, "MWH.012", 1)
        await service.create_assignment(3, "MWH.023", 1)

        with pytest.raises(LimitExceededError) as exc_info:
            await service.create_assignment(4, "MWH.030", 1)

        assert exc_info.value.details["constraint"] == "warehouses_per_store"
        assert exc_info.value.limit == 3
        assert exc_info.value.current == 3

    async def test_store_limit_skipped_for_already_linked_warehouse(
        self, service: FulfillmentService
    ) -> None:
        await service.create_assignment(1, "MWH.001", 1)
        await service.create_assignment(2, "MWH.012", 1)
        await service.create_assignment(3, "MWH.023", 1)

        assignment = await service.create_assignment(4, "MWH.001", 1)

        assert assignment.triple == (4, "MWH.001", 1)

    async def test_sixth_product_in_warehouse(self, service: FulfillmentService) -> None:
        for product_id in range(1, 6):
            await service.create_assignment(product_id, "MWH.001", 1)

        with pytest.raises(LimitExceededError) as exc_info:
            await service.create_assignment(6, "MWH.001", 2)

        assert exc_info.value.details["constraint"] == "products_per_warehouse"
        assert exc_info.value.details["warehouse_code"] == "MWH.001"
        assert exc_info.value.limit == 5

    async def test_warehouse_limit_skipped_for_already_stocked_product(
        self, service: FulfillmentService
    ) -> None:
        for product_id in range(1, 6):
            await service.create_assignment(product_id, "MWH.001", 1)

        assignment = await service.create_assignment(1, "MWH.001", 2)

        assert assignment.store_id == 2

    async def test_counts_are_distinct(
        self, service: FulfillmentService, assignments: FakeAssignmentStorePort
    ) -> None:
        # Two rows for MWH.001 at store 1 count as one warehouse
        assignments.add(1, "MWH.001", 1)
        assignments.add(2, "MWH.001", 1)
        assignments.add(3, "MWH.012", 1)

        assignment = await service.create_assignment(4, "MWH.023", 1)

        assert assignment.warehouse_code == "MWH.023"

    async def test_limit_failure_writes_nothing(
        self,
        service: FulfillmentService,
        assignments: FakeAssignmentStorePort,
        unit_of_work: FakeUnitOfWork,
    ) -> None:
        await service.create_assignment(1, "MWH.001", 1)
        await service.create_assignment(1, "MWH.012", 1)

        with pytest.raises(LimitExceededError):
            await service.create_assignment(1, "MWH.023", 1)

        assert len(await assignments.find_all()) == 2
        assert unit_of_work.rollbacks == 1

    async def test_custom_policy(
        self,
        assignments: FakeAssignmentStorePort,
        warehouses: FakeWarehouseStorePort,
        products: FakeProductLookupPort,
        stores: FakeStoreRepositoryPort,
        unit_of_work: FakeUnitOfWork,
    ) -> None:
        service = FulfillmentService(
            assignments,
            warehouses,
            products,
            stores,
            unit_of_work,
            policy=LimitPolicy(max_warehouses_per_product_per_store=1),
        )
        await service.create_assignment(1, "MWH.001", 1)

        with pytest.raises(LimitExceededError, match="1 warehouses"):
            await service.create_assignment(1, "MWH.012", 1)

    async def test_deleting_frees_a_slot(self, service: FulfillmentService) -> None:
        first = await service.create_assignment(1, "MWH.001", 1)
        await service.create_assignment(1, "MWH.012", 1)

        await service.delete_assignment(first.id)  # type: ignore[arg-type]

        assignment = await service.create_assignment(1, "MWH.023", 1)
        assert assignment.warehouse_code == "MWH.023"


# ============================================================================
# Delete and queries
# ============================================================================


@pytest.mark.asyncio
class TestDeleteAndQueries:
    async def test_delete_by_id(
        self, service: FulfillmentService, assignments: FakeAssignmentStorePort
    ) -> None:
        assignment = await service.create_assignment(1, "MWH.001", 1)

        await service.delete_assignment(assignment.id)  # type: ignore[arg-type]

        assert await assignments.get_by_id(assignment.id) is None  # type: ignore[arg-type]

    async def test_delete_unknown_id(self, service: FulfillmentService) -> None:
        with pytest.raises(NotFoundError, match="with id 42 not found"):
            await service.delete_assignment(42)

    async def test_delete_by_triple(
        self, service: FulfillmentService, assignments: FakeAssignmentStorePort
    ) -> None:
        await service.create_assignment(1, "MWH.001", 1)

        await service.delete_assignment_by_triple(1, "MWH.001", 1)

        assert not await assignments.exists(1, "MWH.001", 1)

    async def test_delete_by_missing_triple(self, service: FulfillmentService) -> None:
        with pytest.raises(NotFoundError, match="Fulfillment assignment not found"):
            await service.delete_assignment_by_triple(1, "MWH.001", 1)

    async def test_delete_by_triple_validates_input(self, service: FulfillmentService) -> None:
        with pytest.raises(InvalidInputError):
            await service.delete_assignment_by_triple(1, "", 1)

    async def test_delete_succeeds_for_archived_warehouse(
        self,
        service: FulfillmentService,
        assignments: FakeAssignmentStorePort,
    ) -> None:
        assignments.add(1, "MWH.099", 1)

        await service.delete_assignment_by_triple(1, "MWH.099", 1)

        assert await assignments.find_all() == []

    async def test_get_assignment(self, service: FulfillmentService) -> None:
        created = await service.create_assignment(2, "MWH.012", 3)

        fetched = await service.get_assignment(created.id)  # type: ignore[arg-type]

        assert fetched == created

    async def test_get_unknown_assignment(self, service: FulfillmentService) -> None:
        with pytest.raises(NotFoundError):
            await service.get_assignment(7)

    async def test_list_with_filters(self, service: FulfillmentService) -> None:
        await service.create_assignment(1, "MWH.001", 1)
        await service.create_assignment(2, "MWH.001", 2)
        await service.create_assignment(2, "MWH.012", 2)

        assert len(await service.list_assignments()) == 3
        assert {a.product_id for a in await service.list_assignments(store_id=2)} == {2}
        assert len(await service.list_assignments(warehouse_code="MWH.001")) == 2
        only = await service.list_assignments(store_id=2, warehouse_code="MWH.012", product_id=2)
        assert [a.triple for a in only] == [(2, "MWH.012", 2)]
