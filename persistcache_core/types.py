"""PersistCache Types - Items and Records Crossing Layer Boundaries.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import Any, NamedTuple, Optional

from persistcache_core.ttl import EpochMillis, Millis, Seconds


class CacheItem(NamedTuple):
    """A key/value pair with a TTL in seconds, as the memory store takes it."""

    key: str
    value: Any
    ttl: Optional[Seconds] = None


class PersistedRecord(NamedTuple):
    """A record returned by ``StorageEngine.load``.

    ``expires_at`` is absolute, in epoch milliseconds; None never expires.
    """

    key: str
    value: Any
    expires_at: Optional[EpochMillis] = None


class EngineItem(NamedTuple):
    """A value to persist with its TTL in milliseconds remaining."""

    key: str
    value: Any
    ttl: Optional[Millis] = None


class EngineTtl(NamedTuple):
    """A TTL update in milliseconds remaining."""

    key: str
    ttl: Optional[Millis] = None


__all__ = ["CacheItem", "PersistedRecord", "EngineItem", "EngineTtl"]
