"""PersistCache Config - Cache and persistence configuration.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field, fields
from enum import Enum, auto
from typing import Any, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

TEST_ENGINES_ENV = "PERSISTCACHE_TEST_ENGINES"


class WriteMode(Enum):
    """How cache mutations reach the persistence engine."""

    WRITE_THROUGH = auto()    # Persist, then update memory
    WRITE_BEHIND = auto()     # Update memory, persist in the background


@dataclass
class PersistConfig:
    """Coordinator construction input.

    Attributes:
        engine: Registered engine name
        prefix: Namespace appended to the engine's physical location
        engine_options: Engine-specific options
    """

    engine: str = "file"
    prefix: str = ""
    engine_options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PersistConfig":
        """Create from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "engine_options" in values:
            values["engine_options"] = dict(values["engine_options"] or {})
        return cls(**values)


@dataclass
class CacheConfig:
    """Cache facade configuration.

    Attributes:
        std_ttl: Default TTL in seconds (0 = never expires)
        check_period: Seconds between expiry sweeps (0 disables the sweep)
        use_clones: Copy values on read and write
        write_mode: How mutations reach the engine
        log_level: Level for this cache's logger
        persist: Persistence settings, or None for a memory-only cache
    """

    std_ttl: float = 0
    check_period: float = 600
    use_clones: bool = True
    write_mode: WriteMode = WriteMode.WRITE_THROUGH
    log_level: Optional[Union[int, str]] = None
    persist: Optional[PersistConfig] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "CacheConfig":
        """Create from a mapping layered over the process defaults.

        ``persist`` may be a mapping, a PersistConfig, ``True`` for the
        default engine, or falsy for no persistence.
        """
        merged = _merge(copy.deepcopy(_defaults), dict(data or {}))

        persist = merged.pop("persist", None)
        if persist is True:
            persist = PersistConfig(**copy.deepcopy(_defaults.get("persist_defaults", {})))
        elif isinstance(persist, Mapping):
            base = copy.deepcopy(_defaults.get("persist_defaults", {}))
            persist = PersistConfig.from_dict(_merge(base, dict(persist)))
        elif not persist:
            persist = None

        write_mode = merged.get("write_mode", WriteMode.WRITE_THROUGH)
        if isinstance(write_mode, str):
            merged["write_mode"] = WriteMode[write_mode.upper().replace("-", "_")]

        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in merged.items() if k in known}
        return cls(persist=persist, **values)


_BUILTIN_DEFAULTS: Dict[str, Any] = {
    "persist_defaults": {"engine": "file"},
}

_defaults: Dict[str, Any] = copy.deepcopy(_BUILTIN_DEFAULTS)


def _merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge overrides into base."""
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            base[key] = _merge(base[key], value)
        else:
            base[key] = value
    return base


def configure(**overrides: Any) -> None:
    """Merge process-wide defaults used by CacheConfig.from_dict.

    Example:
        configure(std_ttl=60, persist_defaults={"engine": "redis"})
    """
    _merge(_defaults, overrides)
    logger.debug(f"Updated cache defaults: {overrides}")


def get_defaults() -> Dict[str, Any]:
    """Get a copy of the process-wide defaults."""
    return copy.deepcopy(_defaults)


def reset_defaults() -> None:
    """Restore built-in defaults."""
    global _defaults
    _defaults = copy.deepcopy(_BUILTIN_DEFAULTS)


def self_tests_enabled() -> bool:
    """Whether engines should be self-tested as they are registered."""
    return os.environ.get(TEST_ENGINES_ENV, "").strip().lower() in ("1", "true", "yes", "on")


__all__ = [
    "WriteMode",
    "PersistConfig",
    "CacheConfig",
    "configure",
    "get_defaults",
    "reset_defaults",
    "self_tests_enabled",
]
