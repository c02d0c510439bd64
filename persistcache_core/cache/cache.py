"""PersistCache Cache - Persistent TTL Cache Facade.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from typing import Any, Coroutine, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from persistcache_core.cache.store import StoreStats, TTLStore
from persistcache_core.config import CacheConfig, WriteMode
from persistcache_core.engines.registry import EngineRegistry
from persistcache_core.errors import (
    AlreadyLoadedError,
    ClosedCoordinatorError,
    MergeError,
    PersistCacheError,
)
from persistcache_core.storage.coordinator import StorageCoordinator
from persistcache_core.storage.locations import LocationRegistry
from persistcache_core.ttl import EpochMillis, Millis, Seconds, seconds_to_millis, seed_ttl
from persistcache_core.types import CacheItem, EngineItem, EngineTtl

logger = logging.getLogger(__name__)

_MISSING = object()


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _merge_into(dest: Any, source: Any) -> Any:
    """Deep merge; nested mappings merge by key, sequences by index."""
    if isinstance(dest, Mapping) and isinstance(source, Mapping):
        result = dict(dest)
        for key, value in source.items():
            result[key] = _merge_into(result[key], value) if key in result else value
        return result
    if _is_sequence(dest) and _is_sequence(source):
        result = list(dest)
        for i, value in enumerate(source):
            if i < len(result):
                result[i] = _merge_into(result[i], value)
            else:
                result.append(value)
        return result
    return source


def merge_values(dest: Any, source: Any) -> Any:
    """Merge ``source`` into ``dest``.

    Both values must be mappings, or both must be sequences.

    Raises:
        MergeError: If the values cannot be merged
    """
    dest_map, source_map = isinstance(dest, Mapping), isinstance(source, Mapping)
    dest_seq, source_seq = _is_sequence(dest), _is_sequence(source)

    if not (dest_map or dest_seq):
        raise MergeError("Cannot merge into a non-object")
    if not (source_map or source_seq):
        raise MergeError("Cannot merge a non-object into an object")
    if source_seq and not dest_seq:
        raise MergeError("Cannot merge an array into a non-array")
    if dest_seq and not source_seq:
        raise MergeError("Cannot merge a non-array into an array")
    return _merge_into(dest, source)


class PersistentCache:
    """In-memory TTL cache backed by an optional persistence engine.

    Reads are served from memory. Mutations are coroutines: in
    write-through mode they persist first and update memory once the
    engine has accepted the change; in write-behind mode memory is
    updated immediately and the change is persisted in the background.

    Example:
        cache = await PersistentCache.create({
            "std_ttl": 300,
            "persist": {"engine": "file", "prefix": "sessions"},
        })
        await cache.set("user:1", {"name": "alice"}, ttl=60)
        cache.get("user:1")
        await cache.close()
    """

    def __init__(
        self,
        config: Optional[Union[CacheConfig, Mapping[str, Any]]] = None,
        *,
        registry: Optional[EngineRegistry] = None,
        locations: Optional[LocationRegistry] = None,
    ):
        """Initialize cache.

        Args:
            config: Cache configuration or a mapping for CacheConfig.from_dict
            registry: Engine registry (defaults to the process registry)
            locations: Location registry (defaults to the process registry)

        Raises:
            UnknownEngineError: If the configured engine is not registered
            LocationInUseError: If another cache is bound to the same location
            EngineConstructionError: If the engine cannot be built
        """
        if not isinstance(config, CacheConfig):
            config = CacheConfig.from_dict(config)

        self.config = config
        self.id = uuid.uuid4().hex[:8]

        name = config.persist.prefix if config.persist and config.persist.prefix else self.id
        self.logger = logging.getLogger(f"{__package__}.{name}")
        if config.log_level is not None:
            level = config.log_level
            self.logger.setLevel(level.upper() if isinstance(level, str) else level)

        self.store = TTLStore(std_ttl=Seconds(config.std_ttl), use_clones=config.use_clones)
        self.storage: Optional[StorageCoordinator] = None

        self._loaded = False
        self._closed = False
        self._seeding = False
        self._tasks: Set[asyncio.Task] = set()
        self._sweeper: Optional[asyncio.Task] = None

        if config.persist is not None:
            if not config.use_clones:
                self.logger.warning(
                    f"cache.{self.id}|use_clones is off; values restored from storage are copies"
                )
            self.storage = StorageCoordinator(
                config.persist, self.store, registry=registry, locations=locations
            )
            self._attach_listeners()

        self.logger.debug(f"cache.{self.id}|created ({config.write_mode.name.lower()})")

    @classmethod
    async def create(
        cls,
        config: Optional[Union[CacheConfig, Mapping[str, Any]]] = None,
        **kwargs: Any,
    ) -> "PersistentCache":
        """Create a cache and load its persisted data."""
        cache = cls(config, **kwargs)
        try:
            await cache.load()
        except PersistCacheError:
            try:
                await cache.close()
            except PersistCacheError as e:
                cache.logger.debug(f"cache.{cache.id}|close after failed load: {e}")
            raise
        return cache

    @property
    def persistent(self) -> bool:
        return self.storage is not None

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def write_through(self) -> bool:
        return self.storage is not None and self.config.write_mode is WriteMode.WRITE_THROUGH

    async def load(self) -> "PersistentCache":
        """Seed memory from the persistence engine and start the expiry sweep.

        Raises:
            AlreadyLoadedError: If called twice
            EngineOperationError: If the engine load fails
        """
        self._check_open("load")
        if self._loaded:
            raise AlreadyLoadedError(f"cache.{self.id} has already been loaded")
        self._loaded = True

        if self.storage is not None:
            items = await self.storage.load()
            self._seed(items)
            self.logger.info(f"cache.{self.id}|seeded {len(items)} persisted records")

        if self.config.check_period > 0:
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep())
        return self

    # Reads

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value from memory."""
        return self.store.get(key, default)

    def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Get several values, omitting missing keys."""
        return self.store.get_many(keys)

    def exists(self, key: str) -> bool:
        return self.store.exists(key)

    def keys(self, pattern: Optional[str] = None) -> List[str]:
        return self.store.keys(pattern)

    def get_ttl(self, key: str) -> Optional[EpochMillis]:
        """Absolute expiry in epoch milliseconds (0 = never, None = missing)."""
        return self.store.get_ttl(key)

    def get_stats(self) -> StoreStats:
        return self.store.get_stats()

    def dump(self) -> Dict[str, Dict[str, Any]]:
        """Describe every live entry: value, expiry timestamp, date and time left."""
        self.logger.debug(f"cache.{self.id}|dump")
        return {key: entry.to_dict() for key, entry in self.store.entries()}

    # Mutations

    async def set(self, key: str, value: Any, ttl: Optional[Seconds] = None) -> bool:
        """Set a value.

        Args:
            key: Cache key
            value: Value to cache
            ttl: TTL in seconds (None = default, 0 = never, negative = delete)

        Returns:
            True if stored
        """
        self._check_open("set")
        self.logger.debug(f"cache.{self.id}|set {key} (ttl: {ttl})")
        if self.write_through:
            await self.storage.on_set(key, value, self._hook_ttl(ttl))
        return self.store.set(key, value, ttl)

    async def set_many(self, items: Iterable[Any]) -> bool:
        """Set several values.

        Args:
            items: ``(key, value)`` or ``(key, value, ttl)`` tuples
        """
        self._check_open("set_many")
        normalized = []
        for item in items:
            key, value, *rest = item
            normalized.append(CacheItem(key, value, rest[0] if rest else None))

        self.logger.debug(f"cache.{self.id}|set_many {len(normalized)} items")
        if self.write_through:
            await self.storage.on_mset(
                [EngineItem(key, value, self._hook_ttl(ttl)) for key, value, ttl in normalized]
            )
        return self.store.set_many(normalized)

    async def delete(self, key: str) -> int:
        """Delete a key.

        Returns:
            Number of keys deleted from memory
        """
        self._check_open("delete")
        self.logger.debug(f"cache.{self.id}|delete {key}")
        if self.write_through:
            await self.storage.on_del(key)
        return self.store.delete(key)

    async def delete_many(self, keys: Iterable[str]) -> int:
        """Delete several keys."""
        self._check_open("delete_many")
        keys = list(keys)
        self.logger.debug(f"cache.{self.id}|delete_many {keys}")
        if self.write_through:
            await self.storage.on_mdel(keys)
        return self.store.delete_many(keys)

    async def take(self, key: str, default: Any = None) -> Any:
        """Get a value and delete it."""
        self._check_open("take")
        value = self.store.get(key, _MISSING)
        if value is _MISSING:
            return default
        await self.delete(key)
        return value

    async def ttl(self, key: str, ttl: Optional[Seconds] = None) -> bool:
        """Reset a key's TTL.

        Args:
            key: Cache key
            ttl: New TTL in seconds (None = default, 0 = never, negative = delete)

        Returns:
            True if the key exists
        """
        self._check_open("ttl")
        if not self.store.exists(key):
            return False

        self.logger.debug(f"cache.{self.id}|ttl {key} (ttl: {ttl})")
        if self.write_through:
            await self.storage.on_ttl(key, self._hook_ttl(ttl))
        changed = self.store.ttl(key, ttl)

        # Negative TTLs delete, which the del listener already persists
        if self.storage is not None and not self.write_through and self.store.exists(key):
            self._spawn("on_ttl", self.storage.on_ttl(key))
        return changed

    async def ttl_many(self, ttls: Mapping[str, Optional[Seconds]]) -> int:
        """Reset several TTLs.

        Returns:
            Number of keys updated
        """
        self._check_open("ttl_many")
        existing = {key: ttl for key, ttl in ttls.items() if self.store.exists(key)}
        if not existing:
            return 0

        if self.write_through:
            await self.storage.on_mttl(
                [EngineTtl(key, self._hook_ttl(ttl)) for key, ttl in existing.items()]
            )
        updated = sum(1 for key, ttl in existing.items() if self.store.ttl(key, ttl))

        if self.storage is not None and not self.write_through:
            remaining = [EngineTtl(key, None) for key in existing if self.store.exists(key)]
            if remaining:
                self._spawn("on_mttl", self.storage.on_mttl(remaining))
        return updated

    async def merge(self, key: str, value: Any, ttl: Optional[Seconds] = None) -> Any:
        """Deep-merge a mapping or sequence into the stored value.

        A missing key is simply set. Without ``ttl`` the key keeps its
        remaining TTL.

        Returns:
            The merged value

        Raises:
            MergeError: If the values cannot be merged
        """
        self._check_open("merge")
        self.logger.debug(f"cache.{self.id}|merge {key} (ttl: {ttl})")

        current = self.store.get(key, _MISSING)
        if current is _MISSING:
            merged = value
        else:
            merged = merge_values(current, value)
            if ttl is None:
                remaining = seed_ttl(self.store.get_ttl(key))
                ttl = Seconds(0) if remaining is None else remaining

        await self.set(key, merged, ttl)
        return merged

    async def flush_all(self) -> None:
        """Remove every entry from memory and storage."""
        self._check_open("flush_all")
        self.logger.debug(f"cache.{self.id}|flush_all")
        if self.write_through:
            await self.storage.on_flush()
        self.store.flush_all()

    async def flush_stats(self) -> None:
        """Reset statistics."""
        self._check_open("flush_stats")
        if self.write_through:
            await self.storage.on_flush_stats()
        self.store.flush_stats()

    async def close(self) -> None:
        """Stop the expiry sweep, finish background persistence and close storage."""
        if self._closed:
            self.logger.debug(f"cache.{self.id}|already closed")
            return
        self._closed = True
        self.logger.debug(f"cache.{self.id}|close")

        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

        if self._tasks:
            # Failures are logged by _task_done
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        self.store.close()
        if self.storage is not None:
            await self.storage.on_close()
        self.logger.info(f"cache.{self.id}|closed")

    # Internals

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise ClosedCoordinatorError(f"cache.{self.id}|{operation} called after close")

    def _hook_ttl(self, ttl: Optional[Seconds]) -> Millis:
        """Explicit hook TTL for a memory TTL (0 stays 'never')."""
        return seconds_to_millis(self.store.std_ttl if ttl is None else ttl)

    def _seed(self, items: List[CacheItem]) -> None:
        self._seeding = True
        try:
            for key, value, ttl in items:
                # Keys written before load are newer than what was persisted
                if self.store.exists(key):
                    continue
                self.store.set(key, value, Seconds(0) if ttl is None else ttl)
        finally:
            self._seeding = False

    def _attach_listeners(self) -> None:
        storage = self.storage
        self.store.on("expired", lambda key, value: self._forward("on_expired", storage.on_expired, key))

        if self.config.write_mode is WriteMode.WRITE_BEHIND:
            self.store.on("set", lambda key, value: self._forward(
                "on_set", storage.on_set, key, copy.deepcopy(value) if self.config.use_clones else value
            ))
            self.store.on("del", lambda key, value: self._forward("on_del", storage.on_del, key))
            self.store.on("flush", lambda: self._forward("on_flush", storage.on_flush))
            self.store.on("flush_stats", lambda: self._forward("on_flush_stats", storage.on_flush_stats))

    def _forward(self, operation: str, hook: Any, *args: Any) -> None:
        if self._seeding:
            return
        self._spawn(operation, hook(*args))

    def _spawn(self, operation: str, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            self.logger.warning(f"cache.{self.id}|{operation} not persisted: no running event loop")
            return

        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._task_done(operation, t))

    def _task_done(self, operation: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"cache.{self.id}|background {operation} failed: {error}")

    async def _sweep(self) -> None:
        while True:
            await asyncio.sleep(self.config.check_period)
            removed = self.store.check_expired()
            if removed:
                self.logger.debug(f"cache.{self.id}|swept {removed} expired entries")

    async def __aenter__(self) -> "PersistentCache":
        if not self._loaded:
            await self.load()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __contains__(self, key: str) -> bool:
        return self.exists(key)

    def __len__(self) -> int:
        return len(self.store)

    def __repr__(self) -> str:
        location = self.storage.location if self.storage is not None else "memory"
        return f"PersistentCache(id={self.id!r}, location={location!r}, entries={len(self.store)})"


__all__ = ["PersistentCache", "merge_values"]
