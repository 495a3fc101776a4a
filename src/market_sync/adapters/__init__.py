from market_sync.adapters.base import (
    AMENITY,
    CIVIC,
    PROPERTY,
    TRANSIT,
    SourceAdapter,
    get_adapter,
    list_adapters,
    register_adapter,
)

# Builtin adapters register themselves on import.
from market_sync.adapters import ct, fixture, nyc, points  # noqa: F401,E402
from market_sync.adapters.fixture import FixtureAdapter, fixture_for  # noqa: E402
from market_sync.adapters.socrata import SocrataAdapter  # noqa: E402

__all__ = [
    "AMENITY",
    "CIVIC",
    "PROPERTY",
    "TRANSIT",
    "FixtureAdapter",
    "SocrataAdapter",
    "SourceAdapter",
    "fixture_for",
    "get_adapter",
    "list_adapters",
    "register_adapter",
]
