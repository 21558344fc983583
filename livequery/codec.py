from __future__ import annotations

import base64
import binascii
from typing import Any, Iterable, Mapping, Sequence

from livequery.errors import create_error
from livequery.schema import AttributeNode, FieldNode, TypeNode


def encode_base64(value: bytes | bytearray) -> str:
    return base64.b64encode(bytes(value)).decode("ascii")


def decode_base64(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as error:
        raise create_error("transport/decode-error", "invalid base64 value", original_error=error) from error


def deserialize_record(
    data: Mapping[str, Any],
    properties: Iterable[AttributeNode | FieldNode],
) -> dict[str, Any]:
    """Return a copy of *data* with ``bytes`` properties decoded from base64."""
    record = dict(data)
    for prop in properties:
        if prop.name is None or prop.type is None or prop.name not in record:
            continue
        record[prop.name] = _decode_value(prop.type, record[prop.name])
    return record


def serialize_call_args(args: Sequence[Any]) -> list[Any]:
    return [encode_base64(arg) if isinstance(arg, (bytes, bytearray)) else arg for arg in args]


def _decode_value(type_node: TypeNode, value: Any) -> Any:
    if value is None:
        return None
    if type_node.primitive == "bytes":
        return decode_base64(value) if isinstance(value, str) else value
    if type_node.kind == "array" and isinstance(type_node.value, TypeNode) and isinstance(value, list):
        return [_decode_value(type_node.value, item) for item in value]
    if type_node.kind == "map" and isinstance(type_node.value, TypeNode) and isinstance(value, dict):
        return {key: _decode_value(type_node.value, item) for key, item in value.items()}
    if type_node.kind == "object" and isinstance(value, dict):
        return deserialize_record(value, type_node.fields)
    return value
