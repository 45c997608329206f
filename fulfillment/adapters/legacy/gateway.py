"""Legacy store manager gateway.

Implements StoreEventPort by handing committed store changes to the legacy
store manager. The hand-off is a temporary file that is written, read back
and removed; delivery is best effort and never reported to the caller.
"""

import asyncio
import logging
import os
import tempfile

from fulfillment.core.models import Store, StoreEvent, StoreEventType
from fulfillment.core.ports import StoreEventPort

logger = logging.getLogger(__name__)


class LegacyStoreManagerGateway(StoreEventPort):
    """Propagates store create/update events to the legacy store manager."""

    def __init__(self, directory: str | None = None):
        """Initialize the gateway.

        Args:
            directory: Directory for hand-off files. Defaults to the
                system temp directory.
        """
        self.directory = directory

    async def publish(self, event: StoreEvent) -> None:
        """Propagate a committed store event."""
        if event.type == StoreEventType.CREATED:
            logger.info(
                f"Propagating store creation to legacy system: {event.store.name}",
                extra={"store_id": event.store.id},
            )
        else:
            logger.info(
                f"Propagating store update to legacy system: {event.store.name}",
                extra={"store_id": event.store.id},
            )

        try:
            await asyncio.to_thread(self._write_to_file, event.store)
        except OSError as e:
            logger.error(
                f"Failed to propagate store change to legacy system: {e}",
                exc_info=True,
                extra={"store_id": event.store.id},
            )

    @staticmethod
    def format_record(store: Store) -> str:
        """Render a store in the legacy manager's record format."""
        return (
            f"Store created. [ name ={store.name} ] "
            f"[ items on stock ={store.quantity_products_in_stock}]"
        )

    def _write_to_file(self, store: Store) -> str:
        """Write, read back and delete the hand-off file. Returns what was read."""
        fd, path = tempfile.mkstemp(prefix=_safe_prefix(store.name), suffix=".txt", dir=self.directory)
        logger.debug(f"Temporary file created at: {path}")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.format_record(store))

            with open(path, encoding="utf-8") as f:
                content = f.read()
            logger.debug(f"Data read from temporary file: {content}")
            return content
        finally:
            os.remove(path)


def _safe_prefix(name: str) -> str:
    """Strip path separators from a store name used as a file prefix."""
    return "".join(c if c.isalnum() or c in "-_" else "_" for c in name) or "store"
