"""Fake implementations of core ports for testing.

These in-memory implementations allow core domain logic to be tested
without external dependencies:

- FakeWarehouseStorePort: In-memory warehouse persistence with history
- FakeAssignmentStorePort: In-memory assignments with distinct aggregates
- FakeProductLookupPort: Canned products
- FakeStoreRepositoryPort: In-memory stores
- FakeStoreEventPort: Captured store events
- FakeUnitOfWork: Snapshot/restore transactions over the fakes
"""

from .events import FakeStoreEventPort
from .store import (
    FakeAssignmentStorePort,
    FakeProductLookupPort,
    FakeStoreRepositoryPort,
    FakeWarehouseStorePort,
)
from .unit_of_work import FakeUnitOfWork

__all__ = [
    "FakeAssignmentStorePort",
    "FakeProductLookupPort",
    "FakeStoreEventPort",
    "FakeStoreRepositoryPort",
    "FakeUnitOfWork",
    "FakeWarehouseStorePort",
]
