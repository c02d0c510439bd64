"""PersistCache Storage Engine - Persistence Engine Contract.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from persistcache_core.ttl import Millis
from persistcache_core.types import EngineItem, EngineTtl, PersistedRecord

if TYPE_CHECKING:
    from persistcache_core.storage.coordinator import StorageCoordinator

logger = logging.getLogger(__name__)


@dataclass
class EngineStats:
    """Engine statistics.

    Attributes:
        reads: Number of records loaded
        writes: Number of write operations
        deletes: Number of delete operations
        errors: Number of errors
    """

    reads: int = 0
    writes: int = 0
    deletes: int = 0
    errors: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def record_error(self, error: str) -> None:
        """Record an error."""
        self.errors += 1
        self.last_error = error
        self.last_error_at = datetime.now()


class StorageEngine(ABC):
    """Abstract persistence engine behind a storage coordinator.

    Implementations:
    - MemoryEngine: in-process shelves (``memory-test``)
    - FileEngine: sharded directory of record files (``file``)
    - RedisEngine: Redis keyspace (``redis``)

    TTLs crossing this interface are milliseconds remaining, None for no
    expiry. ``load`` reports absolute expiries and must never return an
    expired record. Engines doing real I/O serialize their mutations
    through a WriteQueue.

    Optional batch methods ``mset``, ``mdel``, ``mttl`` and ``flush_stats``
    may be defined by subclasses; the coordinator falls back to singular
    calls when they are absent.

    Constructors must not touch the storage location; binding happens
    in ``load``.
    """

    def __init__(
        self,
        options: Optional[Mapping[str, Any]] = None,
        coordinator: Optional["StorageCoordinator"] = None,
    ):
        """Initialize engine.

        Args:
            options: Engine-specific options, including ``prefix``
            coordinator: Owning coordinator, for TTL lookups
        """
        self.options: Dict[str, Any] = dict(options or {})
        self.coordinator = coordinator
        self.location = self.location_for(self.options)
        self._stats = EngineStats()

    @classmethod
    def location_for(cls, options: Mapping[str, Any]) -> str:
        """Physical location an engine built from ``options`` binds to."""
        return str(options.get("prefix") or "")

    @classmethod
    def supports(cls, operation: str) -> bool:
        """Check whether the engine implements an optional batch operation."""
        return callable(getattr(cls, operation, None))

    @abstractmethod
    async def load(self) -> List[PersistedRecord]:
        """Load every unexpired persisted record."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[Millis] = None) -> Any:
        """Upsert a record.

        Args:
            key: Record key
            value: Value to persist
            ttl: Milliseconds remaining, None for no expiry

        Returns:
            The stored value
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a record; deleting a missing key is not an error."""
        pass

    @abstractmethod
    async def ttl(self, key: str, ttl: Optional[Millis] = None) -> None:
        """Update only the expiry of an existing record; no-op if missing."""
        pass

    @abstractmethod
    async def flush(self) -> None:
        """Delete every record at this engine's location."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the location binding."""
        pass

    def get_stats(self) -> EngineStats:
        """Get engine statistics."""
        return self._stats

    def __repr__(self) -> str:
        return f"{type(self).__name__}(location={self.location!r})"


__all__ = [
    "StorageEngine",
    "EngineStats",
    "PersistedRecord",
    "EngineItem",
    "EngineTtl",
]
