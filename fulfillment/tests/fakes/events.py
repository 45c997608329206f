"""Fake StoreEventPort implementation for testing."""

from fulfillment.core.models import StoreEvent
from fulfillment.core.ports import StoreEventPort


class FakeStoreEventPort(StoreEventPort):
    """Captures published store events for assertion."""

    def __init__(self):
        self.events: list[StoreEvent] = []
        self.should_fail = False

    async def publish(self, event: StoreEvent) -> None:
        if self.should_fail:
            raise RuntimeError("Legacy system unavailable")
        self.events.append(event)

    def set_should_fail(self, should_fail: bool) -> None:
        """Configure whether publish should fail."""
        self.should_fail = should_fail

    def reset(self) -> None:
        """Clear captured events."""
        self.events.clear()
        self.should_fail = False
