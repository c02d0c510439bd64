"""Protocol module - Encoding of persisted records."""

from persistcache_core.protocol.serializer import (
    Serializer,
    JSONSerializer,
    PickleSerializer,
    MsgPackSerializer,
    DEFAULT_FORMAT,
    register_serializer,
    available_serializers,
    get_serializer,
)

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
