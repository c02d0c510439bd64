"""Store module - Persistence engines."""

from persistcache_core.store.backend import (
    StorageEngine,
    EngineStats,
    PersistedRecord,
    EngineItem,
    EngineTtl,
)
from persistcache_core.store.queue import WriteQueue
from persistcache_core.store.memory import MemoryEngine
from persistcache_core.store.file import FileEngine
from persistcache_core.store.redis import RedisEngine

__all__ = [
    "StorageEngine",
    "EngineStats",
    "PersistedRecord",
    "EngineItem",
    "EngineTtl",
    "WriteQueue",
    "MemoryEngine",
    "FileEngine",
    "RedisEngine",
]
