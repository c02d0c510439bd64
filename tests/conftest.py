"""Shared fixtures.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import pytest

from persistcache_core.config import reset_defaults
from persistcache_core.engines.registry import (
    EngineRegistry,
    register_builtin_engines,
    reset_default_registry,
    set_default_registry,
)
from persistcache_core.storage.locations import (
    LocationRegistry,
    reset_default_locations,
    set_default_locations,
)
from persistcache_core.store.memory import MemoryEngine


@pytest.fixture(autouse=True)
def isolated_state():
    """Give every test fresh process-wide registries and empty shelves."""
    MemoryEngine.reset()
    reset_defaults()
    yield
    MemoryEngine.reset()
    reset_defaults()
    reset_default_registry()
    reset_default_locations()


@pytest.fixture
def registry():
    """Registry holding the built-in engines, installed as the default."""
    engines = register_builtin_engines(EngineRegistry())
    set_default_registry(engines)
    return engines


@pytest.fixture
def locations():
    """Empty location registry, installed as the default."""
    table = LocationRegistry()
    set_default_locations(table)
    return table


@pytest.fixture
def file_options(tmp_path):
    """File engine options rooted in a temporary directory."""
    return {"dir": str(tmp_path / "storage")}
