"""Location registry: static lookup of the physical sites warehouses may occupy."""

from collections.abc import Iterable
from types import MappingProxyType

from .models import Location
from .ports import LocationResolverPort

KNOWN_LOCATIONS: tuple[Location, ...] = (
    Location("ZWOLLE-001", 1, 40),
    Location("ZWOLLE-002", 2, 50),
    Location("AMSTERDAM-001", 5, 100),
    Location("AMSTERDAM-002", 3, 75),
    Location("TILBURG-001", 1, 40),
    Location("HELMOND-001", 1, 45),
    Location("EINDHOVEN-001", 2, 70),
    Location("VETSBY-001", 1, 90),
)


class LocationRegistry(LocationResolverPort):
    """Read-only table of known locations.

    Lookup is an exact, case-sensitive match on the identifier. Unknown or
    empty identifiers resolve to None; resolve() never raises.
    """

    def __init__(self, locations: Iterable[Location] = KNOWN_LOCATIONS):
        by_id: dict[str, Location] = {}
        for location in locations:
            if location.identification in by_id:
                raise ValueError(
                    f"Duplicate location identifier: {location.identification}"
                )
            by_id[location.identification] = location
        self._locations = MappingProxyType(by_id)

    def resolve(self, identifier: str | None) -> Location | None:
        if not identifier:
            return None
        return self._locations.get(identifier)

    def all(self) -> list[Location]:
        return list(self._locations.values())
