"""Tests for TTL unit conversions.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from persistcache_core.ttl import (
    EpochMillis,
    Millis,
    Seconds,
    expiry_from_millis,
    expiry_from_seconds,
    is_expired,
    millis_to_seconds,
    now_ms,
    remaining_millis,
    seconds_to_millis,
    seed_ttl,
)


class TestConversions:
    """Tests for duration conversions."""

    def test_seconds_and_millis(self):
        """Test seconds <-> milliseconds."""
        assert seconds_to_millis(Seconds(1.5)) == 1500
        assert millis_to_seconds(Millis(250)) == 0.25

    def test_expiry_from_millis(self):
        """Test absolute expiry from a millisecond TTL."""
        assert expiry_from_millis(Millis(1000), EpochMillis(5000)) == 6000
        assert expiry_from_millis(None) is None

    def test_expiry_from_seconds_zero_never_expires(self):
        """Test 0 and None seconds mean no expiry."""
        assert expiry_from_seconds(Seconds(0)) is None
        assert expiry_from_seconds(None) is None
        assert expiry_from_seconds(Seconds(2), EpochMillis(1000)) == 3000

    def test_remaining_millis(self):
        """Test remaining time may go negative."""
        assert remaining_millis(EpochMillis(1500), EpochMillis(1000)) == 500
        assert remaining_millis(EpochMillis(900), EpochMillis(1000)) == -100
        assert remaining_millis(None) is None
        assert remaining_millis(EpochMillis(0)) is None

    def test_seed_ttl(self):
        """Test persisted expiry to memory seconds."""
        assert seed_ttl(EpochMillis(4000), EpochMillis(1000)) == 3
        assert seed_ttl(None) is None

    def test_is_expired(self):
        """Test expiry check."""
        now = now_ms()
        assert is_expired(EpochMillis(now - 1), now)
        assert is_expired(now, now)
        assert not is_expired(EpochMillis(now + 1000), now)
        assert not is_expired(None)
