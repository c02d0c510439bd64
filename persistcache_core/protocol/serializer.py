"""PersistCache Serializer - Persisted Record Encoding.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import json
import logging
import pickle
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

import msgpack

from persistcache_core.types import PersistedRecord

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "pickle"


class Serializer(ABC):
    """Encodes persisted records to bytes for engines that store bytes.

    A record is written as a three-field mapping: ``key``, ``value`` and
    ``expires_at`` (epoch milliseconds or None). Subclasses only supply
    the byte format through ``dumps`` and ``loads``.
    """

    name: str = ""

    @abstractmethod
    def dumps(self, obj: Any) -> bytes:
        """Encode a plain object."""
        pass

    @abstractmethod
    def loads(self, data: bytes) -> Any:
        """Decode bytes produced by ``dumps``."""
        pass

    def encode(self, record: PersistedRecord) -> bytes:
        """Encode a persisted record."""
        return self.dumps(
            {"key": record.key, "value": record.value, "expires_at": record.expires_at}
        )

    def decode(self, data: bytes) -> PersistedRecord:
        """Decode a persisted record.

        Raises:
            ValueError: If the payload is not a record
        """
        obj = self.loads(data)
        if not isinstance(obj, Mapping) or "key" not in obj or "value" not in obj:
            raise ValueError(f"{self.name} payload is not a persisted record")
        return PersistedRecord(obj["key"], obj["value"], obj.get("expires_at"))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class JSONSerializer(Serializer):
    """JSON records.

    Readable on disk; values must be JSON-compatible and tuples come
    back as lists.
    """

    name = "json"

    def dumps(self, obj: Any) -> bytes:
        return json.dumps(obj, separators=(",", ":")).encode("utf-8")

    def loads(self, data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))


class PickleSerializer(Serializer):
    """Pickle records.

    Round-trips any picklable value. Never load records from an
    untrusted location.
    """

    name = "pickle"

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL):
        self.protocol = protocol

    def dumps(self, obj: Any) -> bytes:
        return pickle.dumps(obj, protocol=self.protocol)

    def loads(self, data: bytes) -> Any:
        return pickle.loads(data)


class MsgPackSerializer(Serializer):
    """MessagePack records: compact, and readable from other languages."""

    name = "msgpack"

    def dumps(self, obj: Any) -> bytes:
        return msgpack.packb(obj, use_bin_type=True)

    def loads(self, data: bytes) -> Any:
        return msgpack.unpackb(data, raw=False, strict_map_key=False)


_serializers: Dict[str, Serializer] = {}


def register_serializer(serializer: Serializer) -> None:
    """Make a serializer available to engines under its name."""
    if not serializer.name:
        raise ValueError(f"{serializer!r} has no name")
    _serializers[serializer.name] = serializer
    logger.debug(f"Registered serializer {serializer.name}")


def available_serializers() -> List[str]:
    """Names accepted by the ``serializer`` engine option."""
    return list(_serializers.keys())


def get_serializer(name: Optional[str] = None) -> Serializer:
    """Get a serializer by name, pickle when ``name`` is None.

    Raises:
        ValueError: If no serializer has that name
    """
    name = name or DEFAULT_FORMAT
    try:
        return _serializers[name]
    except KeyError:
        raise ValueError(
            f"Unknown serializer {name!r}; expected one of {available_serializers()}"
        ) from None


for _serializer in (PickleSerializer(), JSONSerializer(), MsgPackSerializer()):
    register_serializer(_serializer)


__all__ = [
    "Serializer",
    "JSONSerializer",
    "PickleSerializer",
    "MsgPackSerializer",
    "DEFAULT_FORMAT",
    "register_serializer",
    "available_serializers",
    "get_serializer",
]
