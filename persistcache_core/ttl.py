"""PersistCache TTL Units - Time-to-live unit types and conversions.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Three unit systems meet at the storage boundary:

    ┌──────────────┐   seconds    ┌──────────────┐  ms remaining  ┌──────────────┐
    │  TTLStore    │ ───────────▶ │ Coordinator  │ ─────────────▶ │   Engine     │
    │  (memory)    │ ◀─────────── │              │ ◀───────────── │  (persisted) │
    └──────────────┘   seconds    └──────────────┘  epoch ms      └──────────────┘

Every conversion between them goes through this module.
"""

from __future__ import annotations

import time
from typing import NewType, Optional

Seconds = NewType("Seconds", float)
Millis = NewType("Millis", float)
EpochMillis = NewType("EpochMillis", float)


def now_ms() -> EpochMillis:
    """Current wall-clock time in epoch milliseconds."""
    return EpochMillis(time.time() * 1000)


def seconds_to_millis(ttl: Seconds) -> Millis:
    """Convert a duration in seconds to milliseconds."""
    return Millis(ttl * 1000)


def millis_to_seconds(ttl: Millis) -> Seconds:
    """Convert a duration in milliseconds to seconds."""
    return Seconds(ttl / 1000)


def expiry_from_millis(
    ttl: Optional[Millis],
    now: Optional[EpochMillis] = None,
) -> Optional[EpochMillis]:
    """Absolute expiry for a millisecond TTL.

    Args:
        ttl: Milliseconds remaining, or None for no expiry
        now: Reference instant (defaults to now)

    Returns:
        Epoch milliseconds, or None if the entry never expires
    """
    if ttl is None:
        return None
    if now is None:
        now = now_ms()
    return EpochMillis(now + ttl)


def expiry_from_seconds(
    ttl: Optional[Seconds],
    now: Optional[EpochMillis] = None,
) -> Optional[EpochMillis]:
    """Absolute expiry for a TTL in seconds.

    A TTL of 0 or None means the entry never expires.
    """
    if not ttl:
        return None
    return expiry_from_millis(seconds_to_millis(ttl), now)


def remaining_millis(
    expires_at: Optional[EpochMillis],
    now: Optional[EpochMillis] = None,
) -> Optional[Millis]:
    """Milliseconds remaining until an absolute expiry.

    Returns None when there is no expiry (None or 0). The result may be
    zero or negative when the expiry has already passed.
    """
    if not expires_at:
        return None
    if now is None:
        now = now_ms()
    return Millis(expires_at - now)


def seed_ttl(
    expires_at: Optional[EpochMillis],
    now: Optional[EpochMillis] = None,
) -> Optional[Seconds]:
    """Seconds remaining for seeding the memory store from a persisted expiry."""
    remaining = remaining_millis(expires_at, now)
    if remaining is None:
        return None
    return millis_to_seconds(remaining)


def is_expired(
    expires_at: Optional[EpochMillis],
    now: Optional[EpochMillis] = None,
) -> bool:
    """Check whether an absolute expiry has passed."""
    remaining = remaining_millis(expires_at, now)
    return remaining is not None and remaining <= 0


__all__ = [
    "Seconds",
    "Millis",
    "EpochMillis",
    "now_ms",
    "seconds_to_millis",
    "millis_to_seconds",
    "expiry_from_millis",
    "expiry_from_seconds",
    "remaining_millis",
    "seed_ttl",
    "is_expired",
]
