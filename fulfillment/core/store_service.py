"""Store service: implements StoreManagementPort.

Store mutations are committed first and only then handed to the legacy
store manager through StoreEventPort. Publishing is fire-and-forget: a
failure there is logged and never changes the outcome of the mutation.
"""

import logging
from datetime import UTC, datetime

from .errors import NotFoundError, log_rejection
from .models import Store, StoreEvent, StoreEventType
from .ports import StoreEventPort, StoreManagementPort, StoreRepositoryPort, UnitOfWorkPort

logger = logging.getLogger(__name__)


class StoreService(StoreManagementPort):
    """Core implementation of StoreManagementPort."""

    def __init__(
        self,
        stores: StoreRepositoryPort,
        unit_of_work: UnitOfWorkPort,
        events: StoreEventPort | None = None,
    ):
        """Initialize the store service.

        Args:
            stores: StoreRepositoryPort for persistence.
            unit_of_work: UnitOfWorkPort wrapping each mutation.
            events: Optional StoreEventPort; None disables legacy propagation.
        """
        self.stores = stores
        self.unit_of_work = unit_of_work
        self.events = events

    async def create_store(self, name: str, quantity_products_in_stock: int = 0) -> Store:
        store = Store(name=name, quantity_products_in_stock=quantity_products_in_stock)
        async with self.unit_of_work.transaction():
            store = await self.stores.create(store)

        logger.info(f"Created store '{store.name}'", extra={"store_id": store.id})
        await self._publish(store, StoreEventType.CREATED)
        return store

    async def update_store(
        self, store_id: int, name: str, quantity_products_in_stock: int
    ) -> Store:
        async with self.unit_of_work.transaction():
            store = await self.stores.get_by_id(store_id)
            if store is None:
                raise log_rejection(
                    logger,
                    "store update",
                    NotFoundError(f"Store with id of {store_id} does not exist.", store_id=store_id),
                )
            # Validate through the model before touching the persisted record
            updated = Store(
                name=name,
                quantity_products_in_stock=quantity_products_in_stock,
                id=store.id,
            )
            await self.stores.update(updated)

        logger.info(f"Updated store '{updated.name}'", extra={"store_id": store_id})
        await self._publish(updated, StoreEventType.UPDATED)
        return updated

    async def _publish(self, store: Store, event_type: StoreEventType) -> None:
        if self.events is None:
            return
        event = StoreEvent(store=store, type=event_type, occurred_at=datetime.now(UTC))
        try:
            await self.events.publish(event)
        except Exception as e:
            logger.error(
                f"Failed to propagate store {event_type.value} event to legacy system: {e}",
                exc_info=True,
                extra={"store_id": store.id},
            )
