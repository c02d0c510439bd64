"""Tests for StorageCoordinator.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import asyncio

import pytest

from persistcache_core.cache.store import TTLStore
from persistcache_core.config import PersistConfig
from persistcache_core.errors import (
    AlreadyLoadedError,
    ClosedCoordinatorError,
    EngineConstructionError,
    EngineOperationError,
    LocationInUseError,
    UnknownEngineError,
)
from persistcache_core.storage.coordinator import CoordinatorState, StorageCoordinator
from persistcache_core.storage.locations import LocationRegistry
from persistcache_core.storage.readiness import ReadinessState, ReadinessToken
from persistcache_core.store.backend import StorageEngine
from persistcache_core.store.memory import MemoryEngine
from persistcache_core.ttl import now_ms
from persistcache_core.types import EngineItem, EngineTtl


class SingularEngine(StorageEngine):
    """Engine without batch methods that records every call."""

    calls = []

    async def load(self):
        return []

    async def set(self, key, value, ttl=None):
        self.calls.append(("set", key, value, ttl))
        return value

    async def delete(self, key):
        self.calls.append(("delete", key))

    async def ttl(self, key, ttl=None):
        self.calls.append(("ttl", key, ttl))

    async def flush(self):
        self.calls.append(("flush",))

    async def close(self):
        self.calls.append(("close",))


class FailingLoadEngine(MemoryEngine):
    """Engine whose load always fails."""

    async def load(self):
        await asyncio.sleep(0.01)
        raise OSError("corrupt store")


class FailingSetEngine(MemoryEngine):
    """Engine whose writes fail."""

    async def set(self, key, value, ttl=None):
        raise OSError("disk full")


class FailingBatchEngine(MemoryEngine):
    """Engine whose batch writes fail."""

    async def mset(self, items):
        raise OSError("batch rejected")

    async def mdel(self, keys):
        raise OSError("batch rejected")


class FailingItemEngine(SingularEngine):
    """Engine without batch methods that rejects the key ``bad``."""

    async def set(self, key, value, ttl=None):
        if key == "bad":
            raise OSError("bad key")
        return await super().set(key, value, ttl)

    async def delete(self, key):
        if key == "bad":
            raise OSError("bad key")
        await super().delete(key)


class BrokenConstructorEngine(MemoryEngine):
    """Engine whose constructor fails."""

    def __init__(self, options=None, coordinator=None):
        raise RuntimeError("cannot open")


def make(registry, locations, prefix="t1", engine="memory-test", ttl_source=None, **options):
    config = PersistConfig(engine=engine, prefix=prefix, engine_options=options)
    return StorageCoordinator(config, ttl_source, registry=registry, locations=locations)


@pytest.fixture
def engines(registry):
    """Built-in registry plus test engines."""
    SingularEngine.calls = []
    registry.register("singular", SingularEngine)
    registry.register("failing-load", FailingLoadEngine)
    registry.register("failing-set", FailingSetEngine)
    registry.register("broken", BrokenConstructorEngine)
    registry.register("failing-batch", FailingBatchEngine)
    registry.register("failing-item", FailingItemEngine)
    return registry


class TestReadinessToken:
    """Tests for ReadinessToken."""

    @pytest.mark.asyncio
    async def test_ready_releases_waiters(self):
        """Test waiters resume once ready."""
        token = ReadinessToken()
        waiter = asyncio.ensure_future(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.set_ready()
        await waiter
        assert token.state is ReadinessState.READY

    @pytest.mark.asyncio
    async def test_failed_raises_for_every_waiter(self):
        """Test every wait raises the settling error."""
        token = ReadinessToken()
        token.set_failed(ValueError("boom"))

        for _ in range(2):
            with pytest.raises(ValueError):
                await token.wait()

    def test_settles_once(self):
        """Test a token cannot be settled twice."""
        token = ReadinessToken()
        token.set_ready()
        with pytest.raises(RuntimeError):
            token.set_failed(ValueError("late"))


class TestLocationRegistry:
    """Tests for LocationRegistry."""

    def test_reserve_and_release(self):
        """Test reservation lifecycle."""
        table = LocationRegistry()
        owner = object()

        table.reserve("file:/tmp/a", owner)
        assert table.in_use("file:/tmp/a")
        assert table.owner("file:/tmp/a") is owner

        assert table.release("file:/tmp/a", owner)
        assert not table.in_use("file:/tmp/a")

    def test_conflicting_owner(self):
        """Test a second owner is refused."""
        table = LocationRegistry()
        table.reserve("loc", object())

        with pytest.raises(LocationInUseError):
            table.reserve("loc", object())

    def test_release_requires_owner(self):
        """Test only the owner can release."""
        table = LocationRegistry()
        owner = object()
        table.reserve("loc", owner)

        assert not table.release("loc", object())
        assert table.in_use("loc")


class TestConstruction:
    """Tests for coordinator construction."""

    def test_binds_location(self, engines, locations):
        """Test construction reserves the engine location."""
        coordinator = make(engines, locations)

        assert coordinator.location == "memory-test:t1"
        assert locations.owner("memory-test:t1") is coordinator
        assert coordinator.state is CoordinatorState.CONSTRUCTING

    def test_same_location_refused(self, engines, locations):
        """Test a second coordinator on the same engine and prefix fails."""
        make(engines, locations)

        with pytest.raises(LocationInUseError):
            make(engines, locations)

    def test_distinct_prefixes(self, engines, locations):
        """Test different prefixes coexist."""
        make(engines, locations, prefix="a")
        make(engines, locations, prefix="b")
        assert len(locations) == 2

    def test_unknown_engine(self, engines, locations):
        """Test an unregistered engine fails and reserves nothing."""
        with pytest.raises(UnknownEngineError):
            make(engines, locations, engine="nope")
        assert len(locations) == 0

    def test_construction_failure_releases(self, engines, locations):
        """Test constructor failures release the reservation."""
        with pytest.raises(EngineConstructionError):
            make(engines, locations, engine="broken")
        assert len(locations) == 0

    def test_engine_gets_backref(self, engines, locations):
        """Test the engine receives its coordinator."""
        coordinator = make(engines, locations)
        assert coordinator.engine.coordinator is coordinator


class TestLoad:
    """Tests for load()."""

    @pytest.mark.asyncio
    async def test_round_trip(self, engines, locations):
        """Test a set survives into a fresh coordinator's load."""
        coordinator = make(engines, locations)
        assert await coordinator.load() == []
        await coordinator.on_set("k", ["v", 1], 0)
        await coordinator.on_close()

        fresh = make(engines, locations)
        items = await fresh.load()
        assert [(item.key, item.value, item.ttl) for item in items] == [("k", ["v", 1], None)]

    @pytest.mark.asyncio
    async def test_concrete_scenario(self, engines, locations):
        """Test set, close and reload on memory-test/t1."""
        coordinator = make(engines, locations)
        assert await coordinator.load() == []
        await coordinator.on_set("x", {"a": 1}, 1000)
        await coordinator.on_close()

        fresh = make(engines, locations)
        items = await fresh.load()

        assert len(items) == 1
        assert items[0].key == "x"
        assert items[0].value == {"a": 1}
        assert 0 < items[0].ttl <= 1

    @pytest.mark.asyncio
    async def test_expired_not_loaded(self, engines, locations):
        """Test a 50ms TTL entry is gone after 80ms."""
        coordinator = make(engines, locations)
        await coordinator.load()
        await coordinator.on_set("short", "lived", 50)
        await coordinator.on_close()

        await asyncio.sleep(0.08)
        fresh = make(engines, locations)
        assert await fresh.load() == []

    @pytest.mark.asyncio
    async def test_state_transitions(self, engines, locations):
        """Test constructing -> loading -> ready."""
        coordinator = make(engines, locations)
        task = asyncio.ensure_future(coordinator.load())
        await asyncio.sleep(0)
        assert coordinator.state in (CoordinatorState.LOADING, CoordinatorState.READY)

        await task
        assert coordinator.state is CoordinatorState.READY
        assert coordinator.ready.state is ReadinessState.READY

    @pytest.mark.asyncio
    async def test_load_twice(self, engines, locations):
        """Test a second load fails."""
        coordinator = make(engines, locations)
        await coordinator.load()

        with pytest.raises(AlreadyLoadedError):
            await coordinator.load()

    @pytest.mark.asyncio
    async def test_failed_load(self, engines, locations):
        """Test a failed load fails every later hook with the load error."""
        coordinator = make(engines, locations, engine="failing-load")
        queued = asyncio.ensure_future(coordinator.on_set("a", 1, 0))

        with pytest.raises(EngineOperationError) as exc_info:
            await coordinator.load()
        load_error = exc_info.value

        assert coordinator.state is CoordinatorState.FAILED
        with pytest.raises(EngineOperationError) as queued_info:
            await queued
        assert queued_info.value is load_error
        with pytest.raises(EngineOperationError) as later_info:
            await coordinator.on_del("a")
        assert later_info.value is load_error

    @pytest.mark.asyncio
    async def test_close_after_failed_load_releases(self, engines, locations):
        """Test close after a failed load frees the location and re-raises."""
        coordinator = make(engines, locations, engine="failing-load")
        with pytest.raises(EngineOperationError):
            await coordinator.load()

        with pytest.raises(EngineOperationError):
            await coordinator.on_close()
        assert len(locations) == 0


class TestHooks:
    """Tests for mutation hooks."""

    @pytest.mark.asyncio
    async def test_hooks_wait_for_load(self, engines, locations):
        """Test hooks issued before load reach the engine after it."""
        coordinator = make(engines, locations, latency=0.01)
        pending = asyncio.ensure_future(coordinator.on_set("a", 1, 0))
        await asyncio.sleep(0.02)

        assert not pending.done()
        assert MemoryEngine.shelf("t1") == {}

        await coordinator.load()
        await pending
        assert MemoryEngine.shelf("t1")["a"].value == 1

    @pytest.mark.asyncio
    async def test_ordering_before_load(self, engines, locations):
        """Test two queued sets resolve and leave exactly one value."""
        coordinator = make(engines, locations, latency=0.005)
        first = asyncio.ensure_future(coordinator.on_set("a", 1, 0))
        second = asyncio.ensure_future(coordinator.on_set("a", 2, 0))
        await asyncio.sleep(0)

        await coordinator.load()
        await asyncio.gather(first, second)

        shelf = MemoryEngine.shelf("t1")
        assert list(shelf) == ["a"]
        assert shelf["a"].value in (1, 2)

    @pytest.mark.asyncio
    async def test_delete_absent_key(self, engines, locations):
        """Test deleting a missing key is harmless."""
        coordinator = make(engines, locations)
        await coordinator.load()
        await coordinator.on_set("keep", 1, 0)

        await coordinator.on_del("missing")
        await coordinator.on_mdel(["missing", "also-missing"])
        assert list(MemoryEngine.shelf("t1")) == ["keep"]

    @pytest.mark.asyncio
    async def test_ttl_from_memory_store(self, engines, locations):
        """Test an omitted TTL is read from the memory store."""
        store = TTLStore()
        store.set("a", 1, ttl=10)
        coordinator = make(engines, locations, ttl_source=store)
        await coordinator.load()

        await coordinator.on_set("a", 1)

        remaining = MemoryEngine.shelf("t1")["a"].expires_at - now_ms()
        assert 9_000 < remaining <= 10_000

    @pytest.mark.asyncio
    async def test_no_memory_expiry_persists_forever(self, engines, locations):
        """Test keys without memory expiry persist without expiry."""
        store = TTLStore()
        store.set("a", 1)
        coordinator = make(engines, locations, ttl_source=store)
        await coordinator.load()

        await coordinator.on_set("a", 1)
        assert MemoryEngine.shelf("t1")["a"].expires_at is None

    @pytest.mark.asyncio
    async def test_expired_in_memory_deletes(self, engines, locations):
        """Test a non-positive remaining TTL becomes an engine delete."""
        store = TTLStore()
        store.set("a", 1, ttl=0.01)
        coordinator = make(engines, locations, ttl_source=store)
        await coordinator.load()
        await coordinator.on_set("a", 1, 0)

        await asyncio.sleep(0.02)
        assert await coordinator.on_set("a", 1) is None
        assert "a" not in MemoryEngine.shelf("t1")

    @pytest.mark.asyncio
    async def test_negative_ttl_deletes(self, engines, locations):
        """Test an explicit negative TTL deletes."""
        coordinator = make(engines, locations)
        await coordinator.load()
        await coordinator.on_set("a", 1, 0)

        await coordinator.on_set("a", 1, -5)
        assert "a" not in MemoryEngine.shelf("t1")

    @pytest.mark.asyncio
    async def test_on_expired_deletes(self, engines, locations):
        """Test expiry events delete regardless of TTL."""
        coordinator = make(engines, locations)
        await coordinator.load()
        await coordinator.on_set("a", 1, 60_000)

        await coordinator.on_expired("a")
        assert "a" not in MemoryEngine.shelf("t1")

    @pytest.mark.asyncio
    async def test_on_ttl(self, engines, locations):
        """Test TTL updates only touch expiry."""
        coordinator = make(engines, locations)
        await coordinator.load()
        await coordinator.on_set("a", "v", 0)

        await coordinator.on_ttl("a", 5_000)
        record = MemoryEngine.shelf("t1")["a"]
        assert record.value == "v"
        assert 4_000 < record.expires_at - now_ms() <= 5_000

        await coordinator.on_ttl("missing", 5_000)
        assert "missing" not in MemoryEngine.shelf("t1")

    @pytest.mark.asyncio
    async def test_on_flush(self, engines, locations):
        """Test flush clears only this location."""
        other = make(engines, locations, prefix="other")
        await other.load()
        await other.on_set("b", 2, 0)

        coordinator = make(engines, locations)
        await coordinator.load()
        await coordinator.on_set("a", 1, 0)
        await coordinator.on_flush()

        assert MemoryEngine.shelf("t1") == {}
        assert list(MemoryEngine.shelf("other")) == ["b"]

    @pytest.mark.asyncio
    async def test_engine_error_is_wrapped(self, engines, locations):
        """Test per-operation failures surface without failing the coordinator."""
        coordinator = make(engines, locations, engine="failing-set")
        await coordinator.load()

        with pytest.raises(EngineOperationError) as exc_info:
            await coordinator.on_set("a", 1, 0)
        assert exc_info.value.operation == "set"
        assert exc_info.value.key == "a"
        assert isinstance(exc_info.value.__cause__, OSError)

        assert coordinator.state is CoordinatorState.READY
        await coordinator.on_del("a")

    @pytest.mark.asyncio
    async def test_closed_coordinator(self, engines, locations):
        """Test hooks after close fail."""
        coordinator = make(engines, locations)
        await coordinator.load()
        await coordinator.on_close()

        with pytest.raises(ClosedCoordinatorError):
            await coordinator.on_set("a", 1)
        with pytest.raises(ClosedCoordinatorError):
            await coordinator.on_close()
        with pytest.raises(ClosedCoordinatorError):
            await coordinator.load()

    @pytest.mark.asyncio
    async def test_close_before_load(self, engines, locations):
        """Test closing an unloaded coordinator releases its location."""
        coordinator = make(engines, locations)
        await coordinator.on_close()

        assert len(locations) == 0
        make(engines, locations)


class TestBatchHooks:
    """Tests for batch hooks and their fallback."""

    @pytest.mark.asyncio
    async def test_batch_methods_used(self, engines, locations):
        """Test engines with batch methods get one batch call."""
        coordinator = make(engines, locations)
        await coordinator.load()
        engine = coordinator.engine

        await coordinator.on_mset([EngineItem("a", 1, 0), EngineItem("b", 2, 1_000)])
        assert engine.queue.completed == 1
        assert MemoryEngine.shelf("t1")["a"].expires_at is None
        assert MemoryEngine.shelf("t1")["b"].expires_at is not None

        await coordinator.on_mttl([EngineTtl("a", 1_000)])
        await coordinator.on_mdel(["a", "b"])
        assert engine.queue.completed == 3
        assert MemoryEngine.shelf("t1") == {}

    @pytest.mark.asyncio
    async def test_fallback_to_singular(self, engines, locations):
        """Test missing batch methods map to per-item calls in input order."""
        coordinator = make(engines, locations, engine="singular")
        await coordinator.load()

        await coordinator.on_mset([("a", 1, 0), ("b", 2, 500), ("c", 3, -1)])
        await coordinator.on_mttl([("a", 100)])
        await coordinator.on_mdel(["a", "b"])

        assert SingularEngine.calls == [
            ("set", "a", 1, None),
            ("set", "b", 2, 500),
            ("delete", "c"),
            ("ttl", "a", 100),
            ("delete", "a"),
            ("delete", "b"),
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hook, args", [
        ("on_mset", [[("a", 1, 0), ("b", 2, 0)]]),
        ("on_mdel", [["a", "b"]]),
    ])
    async def test_batch_error_propagates(self, engines, locations, hook, args):
        """Test a failing batch call surfaces and leaves the coordinator usable."""
        coordinator = make(engines, locations, engine="failing-batch")
        await coordinator.load()

        with pytest.raises(EngineOperationError) as exc_info:
            await getattr(coordinator, hook)(*args)
        assert exc_info.value.operation == hook[3:]
        assert exc_info.value.key is None
        assert isinstance(exc_info.value.__cause__, OSError)

        assert coordinator.state is CoordinatorState.READY
        await coordinator.on_set("a", 1, 0)

    @pytest.mark.asyncio
    async def test_fallback_error_propagates(self, engines, locations):
        """Test the first per-item failure surfaces after every item is issued."""
        coordinator = make(engines, locations, engine="failing-item")
        await coordinator.load()

        with pytest.raises(EngineOperationError) as exc_info:
            await coordinator.on_mset([("a", 1, 0), ("bad", 2, 0), ("c", 3, 0)])
        assert exc_info.value.operation == "set"
        assert exc_info.value.key == "bad"
        assert ("set", "a", 1, None) in SingularEngine.calls

        with pytest.raises(EngineOperationError) as exc_info:
            await coordinator.on_mdel(["a", "bad"])
        assert exc_info.value.operation == "delete"
        assert exc_info.value.key == "bad"

        assert coordinator.state is CoordinatorState.READY

    @pytest.mark.asyncio
    async def test_flush_stats_without_support(self, engines, locations):
        """Test flush_stats is a no-op for engines without it."""
        coordinator = make(engines, locations, engine="singular")
        await coordinator.load()

        await coordinator.on_flush_stats()
        assert SingularEngine.calls == []
