"""PersistCache Storage Coordinator - Memory/Engine Coordination Layer.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

The coordinator sits between the in-memory TTL store and a persistence
engine:

    constructing ──load()──▶ loading ──ok──▶ ready
                                     └─err─▶ failed

Hooks issued before load settles wait on the readiness token, then
reach the engine in the order they were issued. Hooks issued after a
failed load raise the load error.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Protocol, Tuple

from persistcache_core.config import PersistConfig
from persistcache_core.engines.registry import EngineRegistry, get_default_registry
from persistcache_core.errors import (
    AlreadyLoadedError,
    ClosedCoordinatorError,
    EngineOperationError,
    PersistCacheError,
)
from persistcache_core.storage.locations import LocationRegistry, get_default_locations
from persistcache_core.storage.readiness import ReadinessToken
from persistcache_core.ttl import EpochMillis, Millis, now_ms, remaining_millis, seed_ttl
from persistcache_core.types import CacheItem, EngineItem, EngineTtl

logger = logging.getLogger(__name__)


class TTLSource(Protocol):
    """Read-only view of the memory store used for TTL lookups."""

    def get_ttl(self, key: str) -> Optional[EpochMillis]:
        ...


class CoordinatorState(Enum):
    """Coordinator lifecycle states."""

    CONSTRUCTING = auto()
    LOADING = auto()
    READY = auto()
    FAILED = auto()


class StorageCoordinator:
    """Gates, converts and forwards cache mutations to a persistence engine.

    Responsibilities:
    - Resolve the engine by name through an EngineRegistry
    - Reserve the engine's storage location so no other live
      coordinator binds it
    - Hold every hook until the persisted data set has been loaded
    - Convert TTLs between memory seconds, engine milliseconds and
      persisted epoch timestamps
    - Fall back to per-item calls when the engine lacks batch methods

    Hook TTLs are milliseconds remaining. ``None`` looks up the memory
    store's current expiry for the key, ``0`` never expires and a
    non-positive remaining time deletes the record instead of writing it.

    Example:
        coordinator = StorageCoordinator(PersistConfig(engine="file", prefix="users"), store)
        items = await coordinator.load()
        store.set_many(items)
        await coordinator.on_set("1", {"name": "alice"}, 60_000)
        await coordinator.on_close()
    """

    def __init__(
        self,
        config: PersistConfig,
        ttl_source: Optional[TTLSource] = None,
        *,
        registry: Optional[EngineRegistry] = None,
        locations: Optional[LocationRegistry] = None,
    ):
        """Reserve the storage location and build the engine.

        Args:
            config: Engine name, prefix and engine options
            ttl_source: Memory store consulted for current expiries
            registry: Engine registry (defaults to the process registry)
            locations: Location registry (defaults to the process registry)

        Raises:
            UnknownEngineError: If the engine is not registered
            LocationInUseError: If the location is bound elsewhere
            EngineConstructionError: If the engine constructor fails
        """
        self.id = uuid.uuid4().hex[:8]
        self.config = config
        self._ttl_source = ttl_source
        self._registry = registry if registry is not None else get_default_registry()
        self._locations = locations if locations is not None else get_default_locations()
        self._state = CoordinatorState.CONSTRUCTING
        self._closed = False
        self._ready = ReadinessToken()

        options = dict(config.engine_options)
        if config.prefix:
            options["prefix"] = config.prefix

        self.location = f"{config.engine}:{self._registry.locate(config.engine, options)}"
        self._locations.reserve(self.location, self)
        try:
            self.engine = self._registry.load(config.engine, options, self)
        except BaseException:
            self._locations.release(self.location, self)
            raise

        logger.debug(f"storage.{self.id}|bound {self.location}")

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def ready(self) -> ReadinessToken:
        return self._ready

    def get_ttl(self, key: str) -> Optional[EpochMillis]:
        """Current absolute expiry of a key in the memory store."""
        if self._ttl_source is None:
            return None
        return self._ttl_source.get_ttl(key)

    async def load(self) -> List[CacheItem]:
        """Load persisted records and release waiting hooks.

        Returns:
            Items to seed the memory store, TTLs in seconds

        Raises:
            ClosedCoordinatorError: If closed
            AlreadyLoadedError: If load was already called
            EngineOperationError: If the engine load fails
        """
        self._check_open("load")
        if self._state is not CoordinatorState.CONSTRUCTING:
            raise AlreadyLoadedError(f"storage.{self.id} has already been loaded")

        self._state = CoordinatorState.LOADING
        logger.debug(f"storage.{self.id}|loading persisted records")

        try:
            records = await self.engine.load()
        except asyncio.CancelledError:
            self._fail(EngineOperationError("load", reason="cancelled"))
            raise
        except Exception as e:
            error = EngineOperationError("load", reason=str(e))
            self._fail(error)
            raise error from e

        now = now_ms()
        items = []
        for key, value, expires_at in records:
            ttl = seed_ttl(expires_at, now)
            if ttl is not None and ttl <= 0:
                logger.warning(f"storage.{self.id}|engine returned expired record {key!r}")
                continue
            items.append(CacheItem(key, value, ttl))

        self._state = CoordinatorState.READY
        self._ready.set_ready()
        logger.debug(f"storage.{self.id}|ready with {len(items)} records")
        return items

    async def on_set(self, key: str, value: Any, ttl: Optional[Millis] = None) -> Any:
        """Persist a value.

        Args:
            key: Cache key
            value: Value to persist
            ttl: Milliseconds remaining (None = use the memory expiry, 0 = never)
        """
        await self._enter("on_set")
        expired, ttl = self._resolve_ttl(key, ttl)
        logger.debug(f"storage.{self.id}|on_set {key} (ttl: {ttl})")

        if expired:
            logger.debug(f"storage.{self.id}|on_set {key} already expired; deleting")
            await self._call("delete", key, self.engine.delete, key)
            return None
        return await self._call("set", key, self.engine.set, key, value, ttl)

    async def on_mset(self, items: Iterable[EngineItem]) -> None:
        """Persist several values; TTL rules as for on_set."""
        items = [EngineItem(*item) for item in items]
        await self._enter("on_mset")
        logger.debug(f"storage.{self.id}|on_mset {len(items)} items")

        writes: List[EngineItem] = []
        deletes: List[str] = []
        for key, value, ttl in items:
            expired, ttl = self._resolve_ttl(key, ttl)
            if expired:
                deletes.append(key)
            else:
                writes.append(EngineItem(key, value, ttl))

        if writes:
            await self._batch(
                "mset", writes,
                "set", [(item.key, (item.key, item.value, item.ttl)) for item in writes],
            )
        if deletes:
            await self._batch("mdel", deletes, "delete", [(key, (key,)) for key in deletes])

    async def on_del(self, key: str) -> None:
        """Delete a persisted record."""
        await self._enter("on_del")
        logger.debug(f"storage.{self.id}|on_del {key}")
        await self._call("delete", key, self.engine.delete, key)

    async def on_mdel(self, keys: Iterable[str]) -> None:
        """Delete several persisted records."""
        keys = list(keys)
        await self._enter("on_mdel")
        logger.debug(f"storage.{self.id}|on_mdel {keys}")
        await self._batch("mdel", keys, "delete", [(key, (key,)) for key in keys])

    async def on_expired(self, key: str) -> None:
        """Delete a record the memory store has expired."""
        await self._enter("on_expired")
        logger.debug(f"storage.{self.id}|on_expired {key}")
        await self._call("delete", key, self.engine.delete, key)

    async def on_ttl(self, key: str, ttl: Optional[Millis] = None) -> None:
        """Update a persisted record's expiry; TTL rules as for on_set."""
        await self._enter("on_ttl")
        expired, ttl = self._resolve_ttl(key, ttl)
        logger.debug(f"storage.{self.id}|on_ttl {key} (ttl: {ttl})")

        if expired:
            await self._call("delete", key, self.engine.delete, key)
        else:
            await self._call("ttl", key, self.engine.ttl, key, ttl)

    async def on_mttl(self, items: Iterable[EngineTtl]) -> None:
        """Update several expiries."""
        items = [EngineTtl(*item) for item in items]
        await self._enter("on_mttl")
        logger.debug(f"storage.{self.id}|on_mttl {len(items)} items")

        updates: List[EngineTtl] = []
        deletes: List[str] = []
        for key, ttl in items:
            expired, ttl = self._resolve_ttl(key, ttl)
            if expired:
                deletes.append(key)
            else:
                updates.append(EngineTtl(key, ttl))

        if updates:
            await self._batch(
                "mttl", updates,
                "ttl", [(item.key, (item.key, item.ttl)) for item in updates],
            )
        if deletes:
            await self._batch("mdel", deletes, "delete", [(key, (key,)) for key in deletes])

    async def on_flush(self) -> None:
        """Delete every persisted record at this location."""
        await self._enter("on_flush")
        logger.debug(f"storage.{self.id}|on_flush")
        await self._call("flush", None, self.engine.flush)

    async def on_flush_stats(self) -> None:
        """Forward a stats flush to engines that keep stats."""
        await self._enter("on_flush_stats")
        flush_stats = getattr(self.engine, "flush_stats", None)
        if callable(flush_stats):
            await self._call("flush_stats", None, flush_stats)
        else:
            logger.info(f"storage.{self.id}|stats flushed; engine keeps none")

    async def on_close(self) -> None:
        """Close the engine and release the storage location.

        Raises:
            ClosedCoordinatorError: If already closed
            EngineOperationError: If load failed (after releasing) or close fails
        """
        self._check_open("on_close")
        self._closed = True
        logger.debug(f"storage.{self.id}|on_close")

        load_error: Optional[PersistCacheError] = None
        try:
            if self._state is not CoordinatorState.CONSTRUCTING:
                try:
                    await self._ready.wait()
                except PersistCacheError as e:
                    load_error = e

            try:
                await self._call("close", None, self.engine.close)
            except EngineOperationError as e:
                if load_error is None:
                    raise
                logger.error(f"storage.{self.id}|close after failed load: {e}")
        finally:
            self._locations.release(self.location, self)
            logger.debug(f"storage.{self.id}|released {self.location}")

        if load_error is not None:
            raise load_error

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise ClosedCoordinatorError(
                f"storage.{self.id}|{operation} called after close"
            )

    async def _enter(self, operation: str) -> None:
        self._check_open(operation)
        if not self._ready.settled:
            logger.debug(f"storage.{self.id}|{operation} - awaiting readiness")
        await self._ready.wait()

    def _fail(self, error: PersistCacheError) -> None:
        self._state = CoordinatorState.FAILED
        self._ready.set_failed(error)
        logger.error(f"storage.{self.id}|load failed: {error}")

    def _resolve_ttl(
        self,
        key: str,
        ttl: Optional[Millis],
    ) -> Tuple[bool, Optional[Millis]]:
        """Turn a hook TTL into an engine TTL.

        Returns:
            (expired, engine ttl) where engine ttl None means no expiry
        """
        if ttl is None:
            remaining = remaining_millis(self.get_ttl(key))
            if remaining is None:
                return False, None
            return remaining <= 0, remaining
        if ttl == 0:
            return False, None
        return ttl < 0, ttl

    async def _call(
        self,
        operation: str,
        key: Optional[str],
        func: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Any:
        try:
            return await func(*args)
        except EngineOperationError:
            raise
        except Exception as e:
            logger.debug(f"storage.{self.id}|engine {operation} failed: {e}")
            raise EngineOperationError(operation, key, str(e)) from e

    async def _batch(
        self,
        batch_operation: str,
        batch_args: List[Any],
        operation: str,
        calls: List[Tuple[str, Tuple[Any, ...]]],
    ) -> None:
        batch = getattr(self.engine, batch_operation, None)
        if callable(batch):
            logger.debug(f"storage.{self.id}|using engine.{batch_operation}")
            await self._call(batch_operation, None, batch, batch_args)
            return

        logger.debug(f"storage.{self.id}|mapping {batch_operation} to engine.{operation}")
        func = getattr(self.engine, operation)
        await asyncio.gather(*(self._call(operation, key, func, *args) for key, args in calls))

    def __repr__(self) -> str:
        return (
            f"StorageCoordinator(id={self.id!r}, location={self.location!r}, "
            f"state={self._state.name})"
        )


__all__ = ["StorageCoordinator", "CoordinatorState", "TTLSource"]
