"""PersistCache TTL Store - In-Memory Expiring Key/Value Map.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import copy
import fnmatch
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from persistcache_core.cache.entry import CacheEntry, CacheItem
from persistcache_core.ttl import EpochMillis, Seconds

logger = logging.getLogger(__name__)

EVENTS = ("set", "del", "expired", "flush", "flush_stats")

Listener = Callable[..., None]


@dataclass
class StoreStats:
    """TTL store statistics.

    Attributes:
        hits: Number of cache hits
        misses: Number of cache misses
        keys: Current entry count
        sets: Number of set operations
        deletes: Number of delete operations
        expirations: Number of expirations
        started_at: When stats were last reset
    """

    hits: int = 0
    misses: int = 0
    keys: int = 0
    sets: int = 0
    deletes: int = 0
    expirations: int = 0
    started_at: Optional[datetime] = None

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def reset(self) -> None:
        """Reset counters, keeping the key count."""
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.deletes = 0
        self.expirations = 0
        self.started_at = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "keys": self.keys,
            "sets": self.sets,
            "deletes": self.deletes,
            "expirations": self.expirations,
            "hit_rate": self.hit_rate,
        }


class TTLStore:
    """Thread-safe in-memory map with per-key expiry and mutation events.

    TTLs are given in seconds. ``None`` uses the store default, ``0``
    never expires and a negative TTL deletes the key. Expired entries are
    dropped lazily on read and by ``check_expired()``, each emitting an
    ``expired`` event.

    Events:
        set(key, value), del(key, value), expired(key, value), flush(), flush_stats()

    Example:
        store = TTLStore(std_ttl=60)
        store.on("expired", lambda key, value: print("gone", key))
        store.set("session", {"user": 1}, ttl=5)
        store.get_ttl("session")  # epoch milliseconds
    """

    def __init__(self, std_ttl: Seconds = Seconds(0), use_clones: bool = True):
        """Initialize store.

        Args:
            std_ttl: Default TTL in seconds
            use_clones: Deep-copy values on write and read
        """
        self.std_ttl = std_ttl
        self.use_clones = use_clones

        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._stats = StoreStats(started_at=datetime.now())
        self._listeners: Dict[str, List[Listener]] = {event: [] for event in EVENTS}

    def on(self, event: str, listener: Listener) -> "TTLStore":
        """Register an event listener.

        Returns:
            Self for chaining
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown event {event!r}; expected one of {EVENTS}")
        self._listeners[event].append(listener)
        return self

    def off(self, event: str, listener: Listener) -> None:
        """Remove an event listener."""
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)

    def get(self, key: str, default: Any = None) -> Any:
        """Get value.

        Args:
            key: Cache key
            default: Default value if not found

        Returns:
            Cached value or default
        """
        expired: Optional[CacheEntry] = None
        with self._lock:
            entry = self._entries.get(key)

            if entry is not None and entry.is_expired:
                expired = self._drop_expired(key)
                entry = None

            if entry is None:
                self._stats.misses += 1
            else:
                entry.touch()
                self._stats.hits += 1
                value = self._clone(entry.value)

        if expired is not None:
            self._emit("expired", expired.key, expired.value)
        if entry is None:
            return default
        return value

    def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Get multiple values, omitting missing keys."""
        missing = object()
        result = {}
        for key in keys:
            value = self.get(key, missing)
            if value is not missing:
                result[key] = value
        return result

    def set(self, key: str, value: Any, ttl: Optional[Seconds] = None) -> bool:
        """Set value.

        Args:
            key: Cache key
            value: Value to cache
            ttl: TTL in seconds

        Returns:
            True if stored
        """
        if ttl is None:
            ttl = self.std_ttl
        if ttl < 0:
            self.delete(key)
            return True

        entry = CacheEntry.with_ttl(key, self._clone(value), ttl)
        with self._lock:
            self._entries[key] = entry
            self._stats.sets += 1
            self._stats.keys = len(self._entries)

        self._emit("set", key, value)
        return True

    def set_many(self, items: Iterable[CacheItem]) -> bool:
        """Set multiple (key, value, ttl) items."""
        for item in items:
            key, value, ttl = CacheItem(*item)
            self.set(key, value, ttl)
        return True

    def delete(self, key: str) -> int:
        """Delete key.

        Returns:
            Number of keys deleted (0 or 1)
        """
        return self.delete_many([key])

    def delete_many(self, keys: Iterable[str]) -> int:
        """Delete keys.

        Returns:
            Number of keys deleted
        """
        removed: List[CacheEntry] = []
        with self._lock:
            for key in keys:
                entry = self._entries.pop(key, None)
                if entry is not None:
                    removed.append(entry)
                    self._stats.deletes += 1
            self._stats.keys = len(self._entries)

        for entry in removed:
            self._emit("del", entry.key, entry.value)
        return len(removed)

    def take(self, key: str, default: Any = None) -> Any:
        """Get a value and delete it."""
        missing = object()
        value = self.get(key, missing)
        if value is missing:
            return default
        self.delete(key)
        return value

    def ttl(self, key: str, ttl: Optional[Seconds] = None) -> bool:
        """Reset a key's TTL.

        Args:
            key: Cache key
            ttl: New TTL in seconds (None uses the default, negative deletes)

        Returns:
            True if the key exists
        """
        if ttl is None:
            ttl = self.std_ttl

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired:
                return False
            if ttl >= 0:
                entry.refresh_ttl(ttl)
                return True

        self.delete(key)
        return True

    def get_ttl(self, key: str) -> Optional[EpochMillis]:
        """Get a key's absolute expiry.

        Returns:
            None for a missing key, 0 for a key that never expires,
            otherwise epoch milliseconds
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return entry.expires_at or EpochMillis(0)

    def keys(self, pattern: Optional[str] = None) -> List[str]:
        """Get all keys.

        Args:
            pattern: Optional glob pattern

        Returns:
            List of keys
        """
        with self._lock:
            if pattern is None:
                return list(self._entries.keys())
            return [k for k in self._entries.keys() if fnmatch.fnmatch(k, pattern)]

    def exists(self, key: str) -> bool:
        """Check if key exists and has not expired."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired

    def entries(self) -> List[Tuple[str, CacheEntry]]:
        """Snapshot of live entries."""
        with self._lock:
            return [(k, e) for k, e in self._entries.items() if not e.is_expired]

    def check_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number removed
        """
        expired: List[CacheEntry] = []
        with self._lock:
            for key in list(self._entries.keys()):
                if self._entries[key].is_expired:
                    expired.append(self._drop_expired(key))

        for entry in expired:
            self._emit("expired", entry.key, entry.value)
        return len(expired)

    def flush_all(self) -> None:
        """Remove every entry and reset stats."""
        with self._lock:
            self._entries.clear()
            self._stats.reset()
            self._stats.keys = 0
        self._emit("flush")

    def flush_stats(self) -> None:
        """Reset statistics."""
        with self._lock:
            self._stats.reset()
        self._emit("flush_stats")

    def get_stats(self) -> StoreStats:
        """Get store statistics."""
        with self._lock:
            self._stats.keys = len(self._entries)
            return self._stats

    def close(self) -> None:
        """Drop all listeners."""
        for listeners in self._listeners.values():
            listeners.clear()

    def _clone(self, value: Any) -> Any:
        return copy.deepcopy(value) if self.use_clones else value

    def _drop_expired(self, key: str) -> CacheEntry:
        entry = self._entries.pop(key)
        self._stats.expirations += 1
        self._stats.keys = len(self._entries)
        return entry

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(*args)
            except Exception as e:
                logger.error(f"Listener for {event} failed: {e}")

    def __contains__(self, key: str) -> bool:
        return self.exists(key)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"TTLStore(entries={len(self._entries)})"


__all__ = ["TTLStore", "StoreStats", "EVENTS"]
