"""
JSON as Baileys writes it to disk.

Binary values travel as `{"type": "Buffer", "data": "<base64>"}`; protobuf
messages and store records are flattened to their camelCase dict form.
"""

from __future__ import annotations

import base64
import json
from typing import Any

from google.protobuf import json_format
from google.protobuf.message import Message as ProtoMessage

_BUFFER = "Buffer"


def to_plain(obj: Any) -> Any:
    """
    Convert a protobuf message into plain JSON-shaped data.

    Field names keep their wire (camelCase) spelling and int64 fields become
    decimal strings, matching what Baileys writes to disk. Anything else is
    returned unchanged.
    """

    if isinstance(obj, ProtoMessage):
        return json_format.MessageToDict(obj, preserving_proto_field_name=False)
    return obj


def _encode(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return {"type": _BUFFER, "data": base64.b64encode(bytes(obj)).decode("ascii")}
    if isinstance(obj, ProtoMessage):
        return to_plain(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict) and not isinstance(obj, type):
        return to_dict()
    raise TypeError(f"cannot encode {type(obj).__name__} as JSON")


def _decode(obj: dict[str, Any]) -> Any:
    data = obj.get("data")
    if obj.get("type") != _BUFFER:
        return obj
    if isinstance(data, str):
        return base64.b64decode(data)
    # Node's own Buffer.toJSON emits a list of byte values.
    if isinstance(data, list) and all(isinstance(b, int) for b in data):
        return bytes(data)
    return obj


def dumps(obj: Any, *, indent: int | None = None) -> str:
    return json.dumps(obj, default=_encode, indent=indent, ensure_ascii=False)


def loads(data: str) -> Any:
    return json.loads(data, object_hook=_decode)
