"""PersistCache Errors - Exception taxonomy.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import Optional


class PersistCacheError(Exception):
    """Base class for all PersistCache errors."""


class DuplicateEngineError(PersistCacheError, ValueError):
    """An engine name was registered twice."""

    def __init__(self, name: str):
        super().__init__(f"Persistent storage engine {name!r} is already registered")
        self.name = name


class InvalidEngineError(PersistCacheError, TypeError):
    """An engine constructor is missing or not callable."""


class UnknownEngineError(PersistCacheError, LookupError):
    """No engine is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(f"No persistent storage engine {name!r} is registered")
        self.name = name


class EngineConstructionError(PersistCacheError):
    """An engine constructor raised."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"Could not construct engine {name!r}: {reason}")
        self.name = name


class LocationInUseError(PersistCacheError):
    """A storage location is already bound by a live coordinator."""

    def __init__(self, location: str):
        super().__init__(
            f"Storage location {location!r} is already in use; "
            "use a distinct prefix for each cache"
        )
        self.location = location


class AlreadyLoadedError(PersistCacheError):
    """load() was called more than once on one coordinator."""


class ClosedCoordinatorError(PersistCacheError):
    """A hook was issued after the coordinator was closed."""


class EngineOperationError(PersistCacheError):
    """An engine call failed.

    Attributes:
        operation: Engine operation name
        key: Key involved, if any
    """

    def __init__(self, operation: str, key: Optional[str] = None, reason: str = ""):
        target = f" for key {key!r}" if key is not None else ""
        super().__init__(f"Engine {operation}{target} failed: {reason}")
        self.operation = operation
        self.key = key


class MergeError(PersistCacheError, ValueError):
    """Values of incompatible shapes were merged."""


class ConformanceError(PersistCacheError):
    """An engine failed the conformance suite."""


__all__ = [
    "PersistCacheError",
    "DuplicateEngineError",
    "InvalidEngineError",
    "UnknownEngineError",
    "EngineConstructionError",
    "LocationInUseError",
    "AlreadyLoadedError",
    "ClosedCoordinatorError",
    "EngineOperationError",
    "MergeError",
    "ConformanceError",
]
