"""Stable identities for request descriptions.

Keys are plain strings so they can be compared, logged and used as dict keys
across process runs:

- ``record:{collectionId}/{recordId}``
- ``collection:{collectionId}`` for a listing without parameters
- ``query:{collectionId}?{canonical JSON of parameters}``
"""
from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

from livequery.contracts import RequestDescriptor
from livequery.errors import create_error


class KeyTag(StrEnum):
    RECORD = "record"
    COLLECTION = "collection"
    QUERY = "query"


def canonical_params(descriptor: RequestDescriptor) -> str:
    """Serialize listing parameters deterministically.

    Filters and sort clauses keep insertion order. Absent parameters are
    omitted rather than written as null so that equal descriptors built by
    different code paths serialize identically.
    """
    payload: dict[str, Any] = {}
    if descriptor.where:
        payload["where"] = [[clause.field, clause.op, clause.value] for clause in descriptor.where]
    if descriptor.sort:
        payload["sort"] = [[clause.field, clause.direction] for clause in descriptor.sort]
    if descriptor.limit is not None:
        payload["limit"] = descriptor.limit
    if descriptor.after is not None:
        payload["after"] = descriptor.after
    if descriptor.before is not None:
        payload["before"] = descriptor.before
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def collection_key(collection_id: str) -> str:
    return f"{KeyTag.COLLECTION}:{collection_id}"


def record_key(collection_id: str, record_id: str) -> str:
    return f"{KeyTag.RECORD}:{collection_id}/{record_id}"


def query_key(descriptor: RequestDescriptor) -> str:
    if not descriptor.has_parameters():
        return collection_key(descriptor.collection_id)
    return f"{KeyTag.QUERY}:{descriptor.collection_id}?{canonical_params(descriptor)}"


def derive_key(tag: KeyTag | str, descriptor: RequestDescriptor) -> str:
    try:
        tag = KeyTag(tag)
    except ValueError:
        raise ValueError(f"Unknown key tag '{tag}'") from None

    if descriptor.call is not None or descriptor.body is not None:
        raise create_error("request/invalid-descriptor", "only read requests have subscription keys")

    if tag is KeyTag.RECORD:
        if descriptor.record_id is None:
            raise create_error("request/invalid-descriptor", "record keys require a record id")
        return record_key(descriptor.collection_id, descriptor.record_id)

    if descriptor.record_id is not None:
        raise create_error("request/invalid-descriptor", f"{tag} keys cannot target a single record")
    if tag is KeyTag.COLLECTION:
        if descriptor.has_parameters():
            raise create_error("request/invalid-descriptor", "collection keys cannot carry parameters")
        return collection_key(descriptor.collection_id)
    return query_key(descriptor)
