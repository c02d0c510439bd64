"""PersistCache Redis Engine - Redis Persistence Engine.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Mapping, Optional

import redis.asyncio as aioredis

from persistcache_core.protocol.serializer import Serializer, get_serializer
from persistcache_core.store.backend import StorageEngine
from persistcache_core.store.queue import WriteQueue
from persistcache_core.ttl import EpochMillis, Millis, now_ms
from persistcache_core.types import PersistedRecord

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "persistcache:"
_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _glob_escape(text: str) -> str:
    """Escape Redis glob metacharacters."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


class RedisEngine(StorageEngine):
    """Redis persistence engine.

    Records live under ``<key_prefix>{<prefix>}:`` and expire natively in
    Redis, so ``load`` never sees an expired record.

    Options:
        url: Redis URL (overrides host/port/db/password)
        host: Redis host (default localhost)
        port: Redis port (default 6379)
        db: Redis database number (default 0)
        password: Redis password
        key_prefix: Namespace for every key (default ``persistcache:``)
        prefix: Cache namespace within ``key_prefix``
        serializer: ``pickle`` (default), ``json`` or ``msgpack``
        client: Pre-built ``redis.asyncio`` client

    Example:
        engine = RedisEngine({"url": "redis://cache.local:6379/2", "prefix": "users"})
        await engine.set("1", {"name": "alice"}, 60_000)
    """

    SCAN_COUNT = 100

    def __init__(self, options=None, coordinator=None):
        super().__init__(options, coordinator)
        self.serializer: Serializer = get_serializer(self.options.get("serializer"))
        self.namespace = self._namespace(self.options)
        self._client: Optional[Any] = self.options.get("client")
        self._owns_client = self._client is None
        self._queue = WriteQueue(f"redis:{self.location}")

    @staticmethod
    def _namespace(options: Mapping[str, Any]) -> str:
        """Key namespace ``<key_prefix>{<prefix>}:``.

        The braces keep one cache's namespace from being a string prefix
        of another's. No prefix maps to ``{}``.

        Raises:
            ValueError: If the prefix contains a brace
        """
        prefix = str(options.get("prefix") or "")
        if "{" in prefix or "}" in prefix:
            raise ValueError(f"Redis cache prefix may not contain braces: {prefix!r}")
        return f"{options.get('key_prefix', DEFAULT_KEY_PREFIX)}{{{prefix}}}:"

    @classmethod
    def location_for(cls, options: Mapping[str, Any]) -> str:
        server = options.get("url") or (
            f"redis://{options.get('host', 'localhost')}:{options.get('port', 6379)}"
            f"/{options.get('db', 0)}"
        )
        return f"{server}#{cls._namespace(options)}"

    def _ensure_connected(self) -> Any:
        """Ensure a Redis client exists.

        Returns:
            Redis client
        """
        if self._client is not None:
            return self._client

        if self.options.get("url"):
            self._client = aioredis.Redis.from_url(self.options["url"])
        else:
            self._client = aioredis.Redis(
                host=self.options.get("host", "localhost"),
                port=int(self.options.get("port", 6379)),
                db=int(self.options.get("db", 0)),
                password=self.options.get("password"),
            )
        logger.info(f"Connected to Redis for {self.location}")
        return self._client

    def _make_key(self, key: str) -> str:
        """Make namespaced Redis key."""
        return f"{self.namespace}{key}"

    def _serialize(self, key: str, value: Any) -> bytes:
        # Expiry lives in Redis itself
        return self.serializer.encode(PersistedRecord(key, value, None))

    async def _scan(self) -> List[Any]:
        client = self._ensure_connected()
        return [
            redis_key
            async for redis_key in client.scan_iter(
                match=f"{_glob_escape(self.namespace)}*", count=self.SCAN_COUNT
            )
        ]

    async def load(self) -> List[PersistedRecord]:
        client = self._ensure_connected()
        records = []

        for redis_key in await self._scan():
            data = await client.get(redis_key)
            if data is None:
                continue
            remaining = await client.pttl(redis_key)
            if remaining == -2:
                continue
            expires_at = EpochMillis(now_ms() + remaining) if remaining >= 0 else None

            try:
                record = self.serializer.decode(data)
            except Exception as e:
                logger.error(f"Skipping unreadable record {redis_key!r}: {e}")
                self._stats.record_error(str(e))
                continue
            records.append(record._replace(expires_at=expires_at))

        self._stats.reads += len(records)
        logger.debug(f"Loaded {len(records)} records from {self.location}")
        return records

    async def set(self, key: str, value: Any, ttl: Optional[Millis] = None) -> Any:
        client = self._ensure_connected()
        data = self._serialize(key, value)

        if ttl is not None:
            await self._queue.run(client.set, self._make_key(key), data, px=max(1, int(ttl)))
        else:
            await self._queue.run(client.set, self._make_key(key), data)

        self._stats.writes += 1
        return value

    async def delete(self, key: str) -> None:
        client = self._ensure_connected()
        removed = await self._queue.run(client.delete, self._make_key(key))
        self._stats.deletes += removed or 0

    async def ttl(self, key: str, ttl: Optional[Millis] = None) -> None:
        client = self._ensure_connected()
        redis_key = self._make_key(key)

        # PEXPIRE and PERSIST are no-ops on missing keys
        if ttl is None:
            await self._queue.run(client.persist, redis_key)
        else:
            await self._queue.run(client.pexpire, redis_key, max(1, int(ttl)))

    async def flush(self) -> None:
        client = self._ensure_connected()

        async def clear():
            keys = await self._scan()
            if keys:
                await client.delete(*keys)
            return len(keys)

        count = await self._queue.run(clear)
        logger.debug(f"Flushed {count} records from {self.location}")

    async def close(self) -> None:
        await self._queue.run(lambda: None)
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def __repr__(self) -> str:
        return f"RedisEngine(location={self.location!r})"


__all__ = ["RedisEngine", "DEFAULT_KEY_PREFIX"]
