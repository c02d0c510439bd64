"""PersistCache Conformance - Engine Behaviour Suite.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Drives a PersistentCache against a registered engine and records every
check rather than stopping at the first failure:

- typed values round-trip through memory
- short TTLs expire
- parallel writes to one key leave the last value
- take and merge
- values survive close and re-open
- several prefixes coexist on one engine
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from persistcache_core.config import CacheConfig, PersistConfig
from persistcache_core.errors import ConformanceError, PersistCacheError
from persistcache_core.storage.locations import LocationRegistry

if TYPE_CHECKING:
    from persistcache_core.cache.cache import PersistentCache
    from persistcache_core.engines.registry import EngineRegistry

logger = logging.getLogger(__name__)

TYPED_VALUES: Dict[str, Any] = {
    "string": "foobar",
    "integer": 42,
    "float": 6.023,
    "boolean": False,
    "array": [1, 2, 3],
    "object": {"foo": "bar", "uhoh": "attention !", "num": [1, 2, 3]},
}

PARALLEL_VALUES: List[Any] = [
    1,
    "hello",
    True,
    {"hello": "there", "very": ["long", "value", 42, 3.14156]},
]

MULTI_VALUES: List[Any] = ["one", 2, "THREE", 4.0]


@dataclass
class ConformanceReport:
    """Outcome of one conformance run.

    Attributes:
        name: Engine name
        passed: Descriptions of checks that passed
        failures: Descriptions of checks that failed
    """

    name: str
    passed: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @classmethod
    def crashed(cls, name: str, error: BaseException) -> "ConformanceReport":
        return cls(name=name, failures=[f"suite crashed: {type(error).__name__}: {error}"])

    def check(self, condition: bool, description: str) -> bool:
        """Record a check."""
        if condition:
            self.passed.append(description)
        else:
            self.failures.append(description)
            logger.debug(f"[{self.name}] FAILED {description}")
        return condition

    def equal(self, actual: Any, expected: Any, description: str) -> bool:
        if actual == expected:
            return self.check(True, description)
        return self.check(False, f"{description}: expected {expected!r}, got {actual!r}")

    def raise_for_failures(self) -> None:
        """Raise ConformanceError if any check failed."""
        if self.failures:
            raise ConformanceError(
                f"Engine {self.name} failed {len(self.failures)} checks: {self.failures}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "ok": self.ok,
            "passed": len(self.passed),
            "failures": list(self.failures),
        }


class _Suite:
    def __init__(
        self,
        name: str,
        registry: Optional["EngineRegistry"],
        locations: Optional[LocationRegistry],
        engine_options: Optional[Mapping[str, Any]],
    ):
        self.name = name
        self.registry = registry
        self.locations = locations
        self.engine_options = dict(engine_options or {})
        self.report = ConformanceReport(name=name)
        self.opened: List["PersistentCache"] = []

    async def open(self, prefix: str) -> "PersistentCache":
        from persistcache_core.cache.cache import PersistentCache

        config = CacheConfig(
            persist=PersistConfig(
                engine=self.name,
                prefix=f"conformance/{self.name}/{prefix}",
                engine_options=dict(self.engine_options),
            ),
        )
        cache = await PersistentCache.create(
            config, registry=self.registry, locations=self.locations
        )
        self.opened.append(cache)
        return cache

    async def close_leftovers(self) -> None:
        for cache in self.opened:
            if cache.closed:
                continue
            try:
                await cache.close()
            except PersistCacheError as e:
                logger.error(f"[{self.name}] could not close {cache!r}: {e}")

    async def set_and_get(self, cache: "PersistentCache", key: str, value: Any) -> None:
        self.report.check(await cache.set(key, value), f"set {key} value {value!r}")
        self.report.equal(cache.get(key), value, f"get {key} value")

    async def run(self) -> ConformanceReport:
        check, equal = self.report.check, self.report.equal

        cache = await self.open("main")
        await cache.flush_all()
        check(True, "created cache")

        for key, value in TYPED_VALUES.items():
            await self.set_and_get(cache, key, value)

        await cache.set("ttl-test", "hullo", 0.05)
        equal(cache.get("ttl-test"), "hullo", "value with a 0.05s TTL is cached")
        await asyncio.sleep(0.03)
        equal(cache.get("ttl-test"), "hullo", "value is still cached after 30ms")
        await asyncio.sleep(0.03)
        equal(cache.get("ttl-test"), None, "value is cleared after 60ms")

        results = await asyncio.gather(*(cache.set("parallel", v) for v in PARALLEL_VALUES))
        check(all(results), "parallel sets all succeed")
        equal(cache.get("parallel"), PARALLEL_VALUES[-1], "last parallel set wins")

        await self.set_and_get(cache, "takable", "temporary val")
        equal(await cache.take("takable"), "temporary val", "take returns the value")
        equal(cache.get("takable"), None, "take removes the value")

        await cache.merge("merge-test", {"a": "a", "b": "two", "c": 3})
        equal(cache.get("merge-test"), {"a": "a", "b": "two", "c": 3}, "merging a missing key sets it")
        await cache.merge("merge-test", {"a": "A", "c": [1, 2, 3]})
        equal(
            cache.get("merge-test"),
            {"a": "A", "b": "two", "c": [1, 2, 3]},
            "merging into a value updates it",
        )

        await cache.close()
        check(True, "closed cache")

        cache = await self.open("main")
        check(True, "re-opened cache")
        for key, value in TYPED_VALUES.items():
            equal(cache.get(key), value, f"persisted {key} value")
        equal(cache.get("parallel"), PARALLEL_VALUES[-1], "persisted parallel value")
        equal(cache.get("ttl-test"), None, "expired value was not persisted")

        await cache.flush_all()
        equal(cache.keys(), [], "flushed all data")
        await cache.close()

        await self.run_multi()
        return self.report

    async def run_multi(self) -> None:
        prefixes = [f"multi{i}" for i in range(1, len(MULTI_VALUES) + 1)]

        caches = [await self.open(prefix) for prefix in prefixes]
        for i, (cache, value) in enumerate(zip(caches, MULTI_VALUES)):
            await self.set_and_get(cache, f"multi-val{i}", value)
        for i, cache in enumerate(caches):
            await cache.close()
            self.report.check(True, f"closed multi cache {i}")

        caches = [await self.open(prefix) for prefix in prefixes]
        for i, (cache, value) in enumerate(zip(caches, MULTI_VALUES)):
            self.report.equal(cache.get(f"multi-val{i}"), value, f"persisted multi-val{i}")
            self.report.equal(len(cache.keys()), 1, f"multi cache {i} holds only its own key")
        for cache in caches:
            await cache.flush_all()
            await cache.close()


async def run_conformance(
    name: str,
    *,
    registry: Optional["EngineRegistry"] = None,
    locations: Optional[LocationRegistry] = None,
    engine_options: Optional[Mapping[str, Any]] = None,
) -> ConformanceReport:
    """Run the conformance suite against a registered engine.

    Args:
        name: Engine name
        registry: Registry to resolve the engine from
        locations: Location registry for the caches the suite opens
        engine_options: Options passed to every engine instance

    Returns:
        Report of passed and failed checks
    """
    logger.info(f"Testing engine {name}")
    suite = _Suite(name, registry, locations, engine_options)
    try:
        await suite.run()
    except Exception as e:
        logger.error(f"Engine {name} aborted the suite: {e}")
        suite.report.failures.append(f"suite aborted: {type(e).__name__}: {e}")
    finally:
        await suite.close_leftovers()
    return suite.report


__all__ = ["ConformanceReport", "run_conformance", "TYPED_VALUES"]
