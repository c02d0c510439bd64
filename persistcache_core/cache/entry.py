"""PersistCache Entry - In-Memory Entry with Absolute Expiry.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from persistcache_core.ttl import (
    EpochMillis,
    Seconds,
    expiry_from_seconds,
    is_expired,
    now_ms,
    remaining_millis,
)
from persistcache_core.types import CacheItem


@dataclass
class EntryMetadata:
    """Metadata for a cache entry.

    Attributes:
        created_at: When entry was created
        accessed_at: Last access time
        access_count: Number of accesses
    """

    created_at: float = field(default_factory=time.time)
    accessed_at: float = field(default_factory=time.time)
    access_count: int = 0

    def touch(self) -> None:
        """Update access time and count."""
        self.accessed_at = time.time()
        self.access_count += 1


@dataclass
class CacheEntry:
    """A cached value and its absolute expiry.

    Attributes:
        key: Cache key
        value: Cached value
        expires_at: Expiry in epoch milliseconds, None if the entry never expires
        metadata: Entry metadata
    """

    key: str
    value: Any
    expires_at: Optional[EpochMillis] = None
    metadata: EntryMetadata = field(default_factory=EntryMetadata)

    @classmethod
    def with_ttl(cls, key: str, value: Any, ttl: Optional[Seconds]) -> "CacheEntry":
        """Create an entry expiring ``ttl`` seconds from now (0 or None = never)."""
        return cls(key=key, value=value, expires_at=expiry_from_seconds(ttl))

    @property
    def is_expired(self) -> bool:
        """Check if entry has expired."""
        return is_expired(self.expires_at)

    @property
    def remaining_ttl(self) -> Optional[Seconds]:
        """Get remaining TTL in seconds, never negative."""
        remaining = remaining_millis(self.expires_at)
        if remaining is None:
            return None
        return Seconds(max(0.0, remaining / 1000))

    def touch(self) -> None:
        """Update access time."""
        self.metadata.touch()

    def refresh_ttl(self, ttl: Optional[Seconds]) -> None:
        """Restart the TTL from now.

        Args:
            ttl: New TTL in seconds, 0 or None to never expire
        """
        self.expires_at = expiry_from_seconds(ttl)

    def to_dict(self) -> Dict[str, Any]:
        """Describe the entry for dumps and debugging."""
        result: Dict[str, Any] = {"val": self.value, "ts": self.expires_at or 0}
        if self.expires_at:
            result["date"] = datetime.fromtimestamp(self.expires_at / 1000).isoformat()
            result["ttl"] = f"{int(self.expires_at - now_ms())}ms"
        return result

    def __repr__(self) -> str:
        if self.expires_at:
            return f"CacheEntry(key={self.key!r}, ttl={self.remaining_ttl:.3f}s)"
        return f"CacheEntry(key={self.key!r})"


__all__ = ["CacheItem", "CacheEntry", "EntryMetadata"]
