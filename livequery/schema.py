"""Typed view of a collection's schema AST.

The server returns the AST as a JSON string inside the collection meta. It is
parsed once into these models; callers then ask typed questions (properties,
directives, method parameters) instead of walking raw dicts.
"""
from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from livequery.errors import create_error

META_COLLECTION_ID = "Collection"

NUMBER_TYPES = frozenset({"number", "f32", "f64", "u32", "u64", "i32", "i64"})


class TypeNode(BaseModel):
    """``{"kind": "primitive", "value": "string"}``, ``{"kind": "array", "value": {...}}`` etc."""

    kind: str
    value: str | TypeNode | None = None
    key: TypeNode | None = None
    collection: str | None = None
    fields: list[FieldNode] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    @property
    def primitive(self) -> str | None:
        if self.kind == "primitive" and isinstance(self.value, str):
            return self.value
        return None


class FieldNode(BaseModel):
    name: str
    type: TypeNode
    required: bool = False

    model_config = ConfigDict(extra="allow")


class DirectiveNode(BaseModel):
    kind: str = "directive"
    name: str
    arguments: list[Any] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class AttributeNode(BaseModel):
    """One collection attribute: a property, a method, a directive or an index."""

    kind: str
    name: str | None = None
    type: TypeNode | None = None
    required: bool = False
    directives: list[DirectiveNode] = Field(default_factory=list)
    arguments: list[Any] = Field(default_factory=list)
    attributes: list[AttributeNode] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def parameters(self) -> list[AttributeNode]:
        return [attr for attr in self.attributes if attr.kind == "parameter"]


class NamespaceNode(BaseModel):
    kind: str = "namespace"
    value: str = ""

    model_config = ConfigDict(extra="allow")


class CollectionNode(BaseModel):
    kind: str = "collection"
    name: str
    namespace: NamespaceNode | None = None
    attributes: list[AttributeNode] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def properties(self) -> list[AttributeNode]:
        return [attr for attr in self.attributes if attr.kind == "property"]

    def methods(self) -> list[AttributeNode]:
        return [attr for attr in self.attributes if attr.kind == "method"]

    def method(self, name: str) -> AttributeNode | None:
        for attr in self.methods():
            if attr.name == name:
                return attr
        return None

    def directives(self) -> list[AttributeNode]:
        return [attr for attr in self.attributes if attr.kind == "directive"]

    def has_directive(self, name: str, *, without_arguments: bool = False) -> bool:
        for directive in self.directives():
            if directive.name != name:
                continue
            if without_arguments and directive.arguments:
                continue
            return True
        return False

    def is_public(self) -> bool:
        """``@public`` or an argument-less ``@read`` grants anonymous reads."""
        return self.has_directive("public") or self.has_directive("read", without_arguments=True)


TypeNode.model_rebuild()
AttributeNode.model_rebuild()


def parse_ast(ast: str | list[Any]) -> list[CollectionNode]:
    """Parse the AST JSON (or an already-decoded list) into collection nodes."""
    try:
        nodes = json.loads(ast) if isinstance(ast, str) else ast
    except ValueError as error:
        raise create_error("transport/decode-error", "collection AST is not valid JSON", original_error=error) from error
    if not isinstance(nodes, list):
        raise create_error("transport/decode-error", "collection AST must be a list of nodes")
    return [
        CollectionNode.model_validate(node)
        for node in nodes
        if isinstance(node, dict) and node.get("kind") == "collection"
    ]


def split_collection_id(collection_id: str) -> tuple[str, str]:
    """``"ns/sub/City"`` -> ``("ns/sub", "City")``."""
    namespace, _, name = collection_id.rpartition("/")
    return namespace, name


def find_collection(ast: str | list[Any], collection_id: str) -> CollectionNode:
    namespace, name = split_collection_id(collection_id)
    for node in parse_ast(ast):
        if node.name != name:
            continue
        if node.namespace is not None and node.namespace.value and namespace and node.namespace.value != namespace:
            continue
        return node
    raise create_error("collection/not-found", f"collection '{collection_id}' not found in schema")
