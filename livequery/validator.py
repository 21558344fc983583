from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol, Sequence

from livequery.errors import create_error
from livequery.schema import NUMBER_TYPES, AttributeNode, CollectionNode, FieldNode, TypeNode

logger = logging.getLogger(__name__)


class Validator(Protocol):
    async def validate_set(self, collection: CollectionNode, data: Mapping[str, Any]) -> None: ...


class SchemaValidator(Validator):
    """Structural validation of record data against a parsed collection schema.

    Raises ``record/invalid`` naming the first offending field.
    """

    async def validate_set(self, collection: CollectionNode, data: Mapping[str, Any]) -> None:
        if not isinstance(data, Mapping):
            raise create_error("record/invalid", "record data must be a mapping")
        _check_fields(collection.properties(), data, prefix="")


def validate_call_parameters(collection: CollectionNode, method_name: str, args: Sequence[Any]) -> None:
    """Check *args* against the parameters of *method_name* on *collection*."""
    method = collection.method(method_name)
    if method is None:
        raise create_error(
            "collection/invalid-call",
            f"method '{method_name}' not found in collection '{collection.name}'",
        )

    params = method.parameters()
    if len(args) > len(params):
        raise create_error(
            "collection/invalid-call",
            f"method '{method_name}' takes {len(params)} arguments, got {len(args)}",
        )

    for index, param in enumerate(params):
        if index >= len(args):
            if param.required:
                raise create_error(
                    "collection/invalid-call",
                    f"missing argument '{param.name}' for method '{method_name}'",
                )
            continue
        if param.type is not None and not _matches(param.type, args[index]):
            raise create_error(
                "collection/invalid-call",
                f"argument '{param.name}' for method '{method_name}' has the wrong type",
            )


def _check_fields(fields: Sequence[AttributeNode | FieldNode], data: Mapping[str, Any], prefix: str) -> None:
    known = {field.name: field for field in fields if field.name}

    for name in data:
        if name not in known:
            raise create_error("record/invalid", f"unknown field '{prefix}{name}'")

    for name, field in known.items():
        if name not in data or data[name] is None:
            if field.required and name != "id":
                raise create_error("record/invalid", f"missing required field '{prefix}{name}'")
            continue
        if field.type is None:
            continue
        if field.type.kind == "object" and isinstance(data[name], Mapping):
            _check_fields(field.type.fields, data[name], prefix=f"{prefix}{name}.")
            continue
        if not _matches(field.type, data[name]):
            raise create_error("record/invalid", f"field '{prefix}{name}' has the wrong type")


def _matches(type_node: TypeNode, value: Any) -> bool:
    primitive = type_node.primitive
    if primitive == "string":
        return isinstance(value, str)
    if primitive in NUMBER_TYPES:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if primitive == "boolean":
        return isinstance(value, bool)
    if primitive == "bytes":
        return isinstance(value, (bytes, bytearray, str))
    if type_node.kind == "array":
        if not isinstance(value, (list, tuple)):
            return False
        if isinstance(type_node.value, TypeNode):
            return all(_matches(type_node.value, item) for item in value)
        return True
    if type_node.kind in ("map", "object", "publickey"):
        return isinstance(value, Mapping)
    if type_node.kind in ("record", "foreignrecord"):
        return isinstance(value, Mapping) and "id" in value
    logger.debug("no validation rule for type kind %r, accepting", type_node.kind)
    return True
