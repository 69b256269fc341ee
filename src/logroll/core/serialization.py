"""
Record serialization for file output.

Messages arrive as raw bytes, text, or mappings. Each one becomes exactly one
newline-terminated record; mappings are encoded as JSON with orjson so that
no intermediate ``str`` is built.
"""

from __future__ import annotations

from typing import Any, Mapping, Union

import orjson

from .errors import SerializationError

Message = Union[bytes, bytearray, memoryview, str, Mapping[str, Any]]

_NEWLINE = b"\n"


def _default(obj: Any) -> Any:
    """Default serializer hook for unsupported types.

    Keep minimal; prefer upstream objects to be plain JSON types already.
    """
    if hasattr(obj, "model_dump"):
        return obj.model_dump(exclude_none=True)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def serialize_mapping_to_json_bytes(payload: Mapping[str, Any]) -> bytes:
    try:
        return orjson.dumps(payload, default=_default, option=orjson.OPT_SORT_KEYS)
    except TypeError as e:
        raise SerializationError("Serialization failed", cause=e) from e


def to_record(message: Message) -> bytes:
    """Return ``message`` as bytes ending in a newline."""
    if isinstance(message, (bytes, bytearray, memoryview)):
        data = bytes(message)
    elif isinstance(message, str):
        data = message.encode("utf-8")
    elif isinstance(message, Mapping):
        data = serialize_mapping_to_json_bytes(message)
    else:
        raise SerializationError(
            f"Unsupported message type: {type(message).__name__}"
        )
    if not data.endswith(_NEWLINE):
        data += _NEWLINE
    return data
