"""Storage module - Coordination between memory and persistence engines."""

from persistcache_core.storage.readiness import (
    ReadinessState,
    ReadinessToken,
)
from persistcache_core.storage.locations import (
    LocationRegistry,
    get_default_locations,
    set_default_locations,
    reset_default_locations,
)
from persistcache_core.storage.coordinator import (
    StorageCoordinator,
    CoordinatorState,
    TTLSource,
)

__all__ = [
    "ReadinessState",
    "ReadinessToken",
    "LocationRegistry",
    "get_default_locations",
    "set_default_locations",
    "reset_default_locations",
    "StorageCoordinator",
    "CoordinatorState",
    "TTLSource",
]
