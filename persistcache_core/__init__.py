"""PersistCache - Persistent TTL Cache System.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

An in-memory TTL cache whose contents survive restarts through a
pluggable persistence engine:
- Reads always served from memory
- Write-through and write-behind modes
- Engines resolved by name through a registry (memory-test, file, Redis)
- One live cache per storage location
- Mutations held until persisted data has been loaded
- Conformance suite for third-party engines

Architecture:
    ┌─────────────────────────────────────────────────────────────────┐
    │                      PersistCache System                        │
    ├─────────────────────────────────────────────────────────────────┤
    │  ┌─────────────────┐        ┌─────────────────┐                 │
    │  │ PersistentCache │───────▶│    TTLStore     │     CACHE       │
    │  │  facade         │ events │  memory, secs   │     LAYER       │
    │  └────────┬────────┘        └─────────────────┘                 │
    │           │ hooks (ms)                                          │
    │  ┌────────┴──────────────────────────────────────┐              │
    │  │            Storage Coordinator                 │   STORAGE    │
    │  │  readiness gate · locations · TTL units        │   LAYER      │
    │  └────────┬──────────────────────────────────────┘              │
    │           │ engine registry                                     │
    │  ┌────────┴──────────────────────────────────────┐              │
    │  │              Persistence Engines               │              │
    │  │   ┌─────────────┐  ┌────────┐  ┌────────┐     │   ENGINE     │
    │  │   │ memory-test │  │  File  │  │ Redis  │     │   LAYER      │
    │  │   └─────────────┘  └────────┘  └────────┘     │              │
    │  └───────────────────────────────────────────────┘              │
    └─────────────────────────────────────────────────────────────────┘

Example Usage:
    from persistcache_core import PersistentCache

    # Memory-only cache
    cache = await PersistentCache.create({"std_ttl": 300})
    await cache.set("user:1", {"name": "John"})
    user = cache.get("user:1")

    # File-backed cache, persisted before memory is updated
    cache = await PersistentCache.create({
        "persist": {"engine": "file", "prefix": "users"},
    })

    # Redis-backed cache, persisted in the background
    cache = await PersistentCache.create({
        "write_mode": "write_behind",
        "persist": {"engine": "redis", "engine_options": {"url": "redis://localhost"}},
    })

    # Custom engines
    from persistcache_core import get_default_registry
    get_default_registry().register("sqlite", SQLiteEngine)
"""

__version__ = "1.0.0"
__author__ = "BlackRoad OS"

from persistcache_core.ttl import (
    Seconds,
    Millis,
    EpochMillis,
)
from persistcache_core.types import (
    CacheItem,
    PersistedRecord,
    EngineItem,
    EngineTtl,
)
from persistcache_core.errors import (
    PersistCacheError,
    DuplicateEngineError,
    InvalidEngineError,
    UnknownEngineError,
    EngineConstructionError,
    LocationInUseError,
    AlreadyLoadedError,
    ClosedCoordinatorError,
    EngineOperationError,
    MergeError,
    ConformanceError,
)
from persistcache_core.config import (
    CacheConfig,
    PersistConfig,
    WriteMode,
    configure,
    get_defaults,
    reset_defaults,
)
from persistcache_core.cache.entry import (
    CacheEntry,
    EntryMetadata,
)
from persistcache_core.cache.store import (
    TTLStore,
    StoreStats,
)
from persistcache_core.cache.cache import PersistentCache
from persistcache_core.store.backend import (
    StorageEngine,
    EngineStats,
)
from persistcache_core.store.queue import WriteQueue
from persistcache_core.store.memory import MemoryEngine
from persistcache_core.store.file import FileEngine
from persistcache_core.store.redis import RedisEngine
from persistcache_core.engines.registry import (
    EngineRegistry,
    get_default_registry,
    set_default_registry,
    reset_default_registry,
)
from persistcache_core.storage.coordinator import (
    StorageCoordinator,
    CoordinatorState,
)
from persistcache_core.storage.locations import (
    LocationRegistry,
    get_default_locations,
)
from persistcache_core.storage.readiness import ReadinessToken
from persistcache_core.protocol.serializer import (
    Serializer,
    JSONSerializer,
    PickleSerializer,
    MsgPackSerializer,
)

__all__ = [
    # TTL units
    "Seconds",
    "Millis",
    "EpochMillis",
    # Records
    "CacheItem",
    "PersistedRecord",
    "EngineItem",
    "EngineTtl",
    # Errors
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
    # Config
    "CacheConfig",
    "PersistConfig",
    "WriteMode",
    "configure",
    "get_defaults",
    "reset_defaults",
    # Cache
    "PersistentCache",
    "TTLStore",
    "StoreStats",
    "CacheEntry",
    "EntryMetadata",
    # Engines
    "StorageEngine",
    "EngineStats",
    "WriteQueue",
    "MemoryEngine",
    "FileEngine",
    "RedisEngine",
    "EngineRegistry",
    "get_default_registry",
    "set_default_registry",
    "reset_default_registry",
    # Storage
    "StorageCoordinator",
    "CoordinatorState",
    "LocationRegistry",
    "get_default_locations",
    "ReadinessToken",
    # Protocol
    "Serializer",
    "JSONSerializer",
    "PickleSerializer",
    "MsgPackSerializer",
]
