"""Engines module - Engine registry and conformance suite."""

from persistcache_core.engines.registry import (
    EngineRegistry,
    EngineFactory,
    register_builtin_engines,
    get_default_registry,
    set_default_registry,
    reset_default_registry,
)

__all__ = [
    "EngineRegistry",
    "EngineFactory",
    "register_builtin_engines",
    "get_default_registry",
    "set_default_registry",
    "reset_default_registry",
]
