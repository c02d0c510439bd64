"""PersistCache Locations - Registry of Bound Storage Locations.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from persistcache_core.errors import LocationInUseError

logger = logging.getLogger(__name__)


class LocationRegistry:
    """Tracks which storage locations are bound by a live coordinator.

    Reserve and release are atomic insert-if-absent and
    remove-if-owner operations.

    Example:
        locations = LocationRegistry()
        locations.reserve("file:/var/cache/users", coordinator)
        locations.release("file:/var/cache/users", coordinator)
    """

    def __init__(self):
        self._owners: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def reserve(self, location: str, owner: Any) -> None:
        """Bind a location to an owner.

        Raises:
            LocationInUseError: If another owner holds the location
        """
        with self._lock:
            current = self._owners.get(location)
            if current is not None and current is not owner:
                raise LocationInUseError(location)
            self._owners[location] = owner
        logger.debug(f"Reserved storage location {location}")

    def release(self, location: str, owner: Any) -> bool:
        """Unbind a location held by ``owner``.

        Returns:
            True if the location was released
        """
        with self._lock:
            if self._owners.get(location) is not owner:
                return False
            del self._owners[location]
        logger.debug(f"Released storage location {location}")
        return True

    def owner(self, location: str) -> Optional[Any]:
        """Get the current owner of a location."""
        with self._lock:
            return self._owners.get(location)

    def in_use(self, location: str) -> bool:
        """Check if a location is bound."""
        with self._lock:
            return location in self._owners

    def locations(self) -> List[str]:
        """List bound locations."""
        with self._lock:
            return list(self._owners.keys())

    def clear(self) -> None:
        """Forget every reservation."""
        with self._lock:
            self._owners.clear()

    def __len__(self) -> int:
        return len(self._owners)

    def __repr__(self) -> str:
        return f"LocationRegistry(bound={len(self._owners)})"


_default: Optional[LocationRegistry] = None
_default_lock = threading.Lock()


def get_default_locations() -> LocationRegistry:
    """Get the process-wide location registry."""
    global _default
    with _default_lock:
        if _default is None:
            _default = LocationRegistry()
        return _default


def set_default_locations(locations: LocationRegistry) -> None:
    """Replace the process-wide location registry."""
    global _default
    with _default_lock:
        _default = locations


def reset_default_locations() -> None:
    """Drop the process-wide location registry."""
    global _default
    with _default_lock:
        _default = None


__all__ = [
    "LocationRegistry",
    "get_default_locations",
    "set_default_locations",
    "reset_default_locations",
]
