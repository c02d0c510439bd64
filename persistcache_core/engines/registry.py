"""PersistCache Engine Registry - Named Persistence Engine Directory.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
)

from persistcache_core.config import self_tests_enabled
from persistcache_core.errors import (
    DuplicateEngineError,
    EngineConstructionError,
    InvalidEngineError,
    PersistCacheError,
    UnknownEngineError,
)
from persistcache_core.store.file import FileEngine
from persistcache_core.store.memory import MemoryEngine
from persistcache_core.store.redis import RedisEngine

if TYPE_CHECKING:
    from persistcache_core.engines.conformance import ConformanceReport
    from persistcache_core.storage.coordinator import StorageCoordinator

logger = logging.getLogger(__name__)

EngineFactory = Callable[[Dict[str, Any], Optional["StorageCoordinator"]], Any]


class EngineRegistry:
    """Maps engine names to engine constructors.

    Constructors are called as ``factory(options, coordinator)``; a class
    deriving from StorageEngine is the usual factory. When
    ``test_on_register`` is set, each newly registered engine is run
    through the conformance suite in the background and the outcome is
    logged.

    Example:
        registry = EngineRegistry()
        registry.register("sqlite", SQLiteEngine)

        @registry.engine("s3")
        class S3Engine(StorageEngine):
            ...

        engine = registry.load("sqlite", {"prefix": "users"}, coordinator)
    """

    def __init__(self, test_on_register: bool = False):
        """Initialize registry.

        Args:
            test_on_register: Self-test engines as they are registered
        """
        self.test_on_register = test_on_register
        self.test_options: Dict[str, Dict[str, Any]] = {}
        self._engines: Dict[str, EngineFactory] = {}
        self._lock = threading.Lock()
        self._background: Set[asyncio.Task] = set()

    def register(self, name: str, engine: EngineFactory) -> EngineFactory:
        """Register an engine constructor.

        Args:
            name: Unique engine name
            engine: Callable building an engine from (options, coordinator)

        Returns:
            The constructor, unchanged

        Raises:
            InvalidEngineError: If the constructor is missing or not callable
            DuplicateEngineError: If the name is taken
        """
        if not name or not isinstance(name, str):
            raise InvalidEngineError(f"Engine name must be a non-empty string, got {name!r}")
        if engine is None:
            raise InvalidEngineError(f"No engine supplied for {name!r}")
        if not callable(engine):
            raise InvalidEngineError(
                f"Engine {name!r} must be callable like a class, got {type(engine).__name__}"
            )

        with self._lock:
            if name in self._engines:
                raise DuplicateEngineError(name)
            self._engines[name] = engine

        logger.debug(f"Registered persistence engine {name}")

        if self.test_on_register:
            logger.debug(f"Engine self-tests are on; testing {name}")
            self._test_in_background([name])

        return engine

    def engine(self, name: str) -> Callable[[EngineFactory], EngineFactory]:
        """Decorator form of register."""
        def decorator(factory: EngineFactory) -> EngineFactory:
            return self.register(name, factory)

        return decorator

    def unregister(self, name: str) -> bool:
        """Remove an engine.

        Returns:
            True if it was registered
        """
        with self._lock:
            return self._engines.pop(name, None) is not None

    def get(self, name: str) -> EngineFactory:
        """Get an engine constructor.

        Raises:
            UnknownEngineError: If not registered
        """
        with self._lock:
            factory = self._engines.get(name)
        if factory is None:
            raise UnknownEngineError(name)
        return factory

    def locate(self, name: str, options: Mapping[str, Any]) -> str:
        """Storage location an engine would bind for ``options``.

        Uses the constructor's ``location_for`` when it has one, else
        the ``prefix`` option.
        """
        factory = self.get(name)
        location_for = getattr(factory, "location_for", None)
        if callable(location_for):
            return str(location_for(options))
        return str(options.get("prefix") or "")

    def load(
        self,
        name: str,
        options: Optional[Mapping[str, Any]] = None,
        coordinator: Optional["StorageCoordinator"] = None,
    ) -> Any:
        """Construct a new engine instance.

        Args:
            name: Engine name
            options: Engine options
            coordinator: Owning coordinator

        Returns:
            Engine instance

        Raises:
            UnknownEngineError: If not registered
            EngineConstructionError: If the constructor raises
        """
        factory = self.get(name)
        logger.debug(f"Loading new {name} engine: {dict(options or {})}")

        try:
            return factory(dict(options or {}), coordinator)
        except PersistCacheError:
            raise
        except Exception as e:
            raise EngineConstructionError(name, str(e)) from e

    def names(self) -> List[str]:
        """List registered engine names."""
        with self._lock:
            return list(self._engines.keys())

    def toggle_tests(self) -> None:
        """Turn on self-tests and test every engine already registered."""
        self.test_on_register = True
        logger.debug("Testing already-registered engines")
        self._test_in_background(self.names())

    async def test_engine(
        self,
        name: str,
        engine_options: Optional[Mapping[str, Any]] = None,
    ) -> "ConformanceReport":
        """Run the conformance suite against one engine and log the outcome."""
        from persistcache_core.engines.conformance import ConformanceReport, run_conformance

        options = engine_options if engine_options is not None else self.test_options.get(name)
        try:
            report = await run_conformance(name, registry=self, engine_options=options)
        except Exception as e:
            logger.error(f"Engine {name} could not be tested: {e}")
            return ConformanceReport.crashed(name, e)

        if report.ok:
            logger.info(f"Engine {name} passed all {len(report.passed)} checks")
        else:
            logger.error(f"Engine {name} failed {len(report.failures)} checks: {report.failures}")
        return report

    async def test_all(
        self,
        engine_options: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> Dict[str, "ConformanceReport"]:
        """Test every registered engine, continuing past failures.

        Args:
            engine_options: Per-engine options keyed by engine name

        Returns:
            Report per engine name
        """
        engine_options = engine_options or {}
        reports = {}
        for name in self.names():
            reports[name] = await self.test_engine(name, engine_options.get(name))
        return reports

    async def wait_for_tests(self) -> None:
        """Wait for background self-tests started on this event loop."""
        if self._background:
            await asyncio.gather(*self._background)

    def _test_in_background(self, names: Iterable[str]) -> None:
        names = list(names)

        async def run() -> None:
            for name in names:
                await self.test_engine(name)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            thread = threading.Thread(
                target=asyncio.run,
                args=(run(),),
                daemon=True,
                name="persistcache-engine-tests",
            )
            thread.start()
            return

        task = loop.create_task(run())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def __contains__(self, name: str) -> bool:
        return name in self._engines

    def __len__(self) -> int:
        return len(self._engines)

    def __repr__(self) -> str:
        return f"EngineRegistry(engines={self.names()})"


def register_builtin_engines(registry: EngineRegistry) -> EngineRegistry:
    """Register the bundled engines: memory-test, file and redis."""
    registry.register("memory-test", MemoryEngine)
    registry.register("file", FileEngine)
    registry.register("redis", RedisEngine)
    return registry


_default: Optional[EngineRegistry] = None
_default_lock = threading.Lock()


def get_default_registry() -> EngineRegistry:
    """Get the process-wide registry, creating it with the built-in engines."""
    global _default
    with _default_lock:
        if _default is None:
            _default = register_builtin_engines(
                EngineRegistry(test_on_register=self_tests_enabled())
            )
        return _default


def set_default_registry(registry: EngineRegistry) -> None:
    """Replace the process-wide registry."""
    global _default
    with _default_lock:
        _default = registry


def reset_default_registry() -> None:
    """Drop the process-wide registry."""
    global _default
    with _default_lock:
        _default = None


__all__ = [
    "EngineRegistry",
    "EngineFactory",
    "register_builtin_engines",
    "get_default_registry",
    "set_default_registry",
    "reset_default_registry",
]
