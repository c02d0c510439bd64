"""PersistCache Memory Engine - In-Process Reference Engine.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import threading
from typing import Any, ClassVar, Dict, Iterable, List, Optional

from persistcache_core.store.backend import StorageEngine
from persistcache_core.store.queue import WriteQueue
from persistcache_core.ttl import Millis, expiry_from_millis, is_expired
from persistcache_core.types import EngineItem, EngineTtl, PersistedRecord

logger = logging.getLogger(__name__)


class MemoryEngine(StorageEngine):
    """Engine persisting into process-wide shelves.

    Each location (the ``prefix`` option) owns one shelf. Shelves outlive
    the engine instance, so a new coordinator bound to the same prefix
    loads what an earlier one wrote. Values are deep-copied in and out,
    as a serializing engine would.

    Options:
        prefix: Shelf name
        latency: Seconds to sleep inside each mutation (simulates slow I/O)

    Example:
        engine = MemoryEngine({"prefix": "t1"})
        await engine.set("x", {"a": 1}, 1000)
        records = await engine.load()
    """

    _shelves: ClassVar[Dict[str, Dict[str, PersistedRecord]]] = {}
    _shelves_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, options=None, coordinator=None):
        super().__init__(options, coordinator)
        self.latency = float(self.options.get("latency", 0) or 0)
        self._queue = WriteQueue(f"memory:{self.location}")
        self._shelf: Optional[Dict[str, PersistedRecord]] = None

    @classmethod
    def reset(cls) -> None:
        """Forget every shelf."""
        with cls._shelves_lock:
            cls._shelves.clear()

    @classmethod
    def shelf(cls, location: str) -> Dict[str, PersistedRecord]:
        """Get (creating if needed) the shelf for a location."""
        with cls._shelves_lock:
            return cls._shelves.setdefault(location, {})

    @property
    def queue(self) -> WriteQueue:
        return self._queue

    def _bound(self) -> Dict[str, PersistedRecord]:
        if self._shelf is None:
            self._shelf = self.shelf(self.location)
        return self._shelf

    async def _pause(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)

    async def load(self) -> List[PersistedRecord]:
        shelf = self._bound()
        records = []
        for key, record in list(shelf.items()):
            if is_expired(record.expires_at):
                del shelf[key]
                continue
            records.append(record._replace(value=copy.deepcopy(record.value)))
        self._stats.reads += len(records)
        logger.debug(f"Loaded {len(records)} records from shelf {self.location!r}")
        return records

    async def set(self, key: str, value: Any, ttl: Optional[Millis] = None) -> Any:
        async def write():
            await self._pause()
            self._bound()[key] = PersistedRecord(
                key, copy.deepcopy(value), expiry_from_millis(ttl)
            )
            self._stats.writes += 1

        await self._queue.run(write)
        return value

    async def mset(self, items: Iterable[EngineItem]) -> List[Any]:
        items = list(items)

        async def write():
            await self._pause()
            shelf = self._bound()
            for key, value, ttl in items:
                shelf[key] = PersistedRecord(key, copy.deepcopy(value), expiry_from_millis(ttl))
            self._stats.writes += len(items)

        await self._queue.run(write)
        return [item.value for item in items]

    async def delete(self, key: str) -> None:
        await self.mdel([key])

    async def mdel(self, keys: Iterable[str]) -> None:
        keys = list(keys)

        async def remove():
            await self._pause()
            shelf = self._bound()
            for key in keys:
                if shelf.pop(key, None) is not None:
                    self._stats.deletes += 1

        await self._queue.run(remove)

    async def ttl(self, key: str, ttl: Optional[Millis] = None) -> None:
        await self.mttl([EngineTtl(key, ttl)])

    async def mttl(self, items: Iterable[EngineTtl]) -> None:
        items = list(items)

        async def update():
            await self._pause()
            shelf = self._bound()
            for key, ttl in items:
                record = shelf.get(key)
                if record is not None:
                    shelf[key] = record._replace(expires_at=expiry_from_millis(ttl))

        await self._queue.run(update)

    async def flush(self) -> None:
        async def clear():
            await self._pause()
            self._bound().clear()

        await self._queue.run(clear)

    async def close(self) -> None:
        # Drain queued writes before giving up the shelf
        await self._queue.run(lambda: None)
        self._shelf = None


__all__ = ["MemoryEngine"]
