"""Cache module - In-memory store and persistent cache facade.

This module provides the TTL store, its entries and the facade that
wires the store to a storage coordinator.
"""

from persistcache_core.cache.entry import (
    CacheEntry,
    CacheItem,
    EntryMetadata,
)
from persistcache_core.cache.store import (
    TTLStore,
    StoreStats,
    EVENTS,
)
from persistcache_core.cache.cache import (
    PersistentCache,
    merge_values,
)

__all__ = [
    "CacheEntry",
    "CacheItem",
    "EntryMetadata",
    "TTLStore",
    "StoreStats",
    "EVENTS",
    "PersistentCache",
    "merge_values",
]
