from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Awaitable, Callable, Literal, Mapping, TypeVar
from urllib.parse import quote

from livequery.errors import create_error

T = TypeVar("T")

SortDirection = Literal["asc", "desc"]

SnapshotFn = Callable[[T], "Awaitable[None] | None"]
SnapshotErrorFn = Callable[[Exception], "Awaitable[None] | None"]
Unsubscribe = Callable[[], None]


class HttpMethod(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


# operator -> wire form inside the `where` query parameter
WHERE_OPERATORS: dict[str, str | None] = {
    "==": None,
    ">": "$gt",
    ">=": "$gte",
    "<": "$lt",
    "<=": "$lte",
}

_BASIC_VALUE_TYPES = (str, int, float, bool, type(None))


def _invalid(message: str) -> Exception:
    return create_error("request/invalid-descriptor", message)


@dataclass(frozen=True)
class WhereClause:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if not isinstance(self.field, str) or not self.field.strip():
            raise _invalid("where field cannot be empty")
        if self.op not in WHERE_OPERATORS:
            allowed = ", ".join(WHERE_OPERATORS)
            raise _invalid(f"unknown where operator '{self.op}'. Allowed operators: {allowed}")
        if not isinstance(self.value, _BASIC_VALUE_TYPES):
            raise _invalid(f"where value for '{self.field}' must be a string, number, boolean or None")
        if isinstance(self.value, float) and not math.isfinite(self.value):
            raise _invalid(f"where value for '{self.field}' must be a finite number")


@dataclass(frozen=True)
class SortClause:
    field: str
    direction: SortDirection = "asc"

    def __post_init__(self) -> None:
        if not isinstance(self.field, str) or not self.field.strip():
            raise _invalid("sort field cannot be empty")
        if self.direction not in ("asc", "desc"):
            raise _invalid(f"sort direction must be 'asc' or 'desc', got '{self.direction}'")


def _check_where_fields(where: tuple[WhereClause, ...]) -> None:
    # One field merges into a single wire entry: either one equality or distinct range operators.
    ops_by_field: dict[str, set[str]] = {}
    for clause in where:
        ops = ops_by_field.setdefault(clause.field, set())
        if clause.op in ops:
            raise _invalid(f"duplicate '{clause.op}' filter on field '{clause.field}'")
        if ops and (clause.op == "==" or "==" in ops):
            raise _invalid(f"cannot combine equality with another filter on field '{clause.field}'")
        ops.add(clause.op)


@dataclass(frozen=True)
class RequestDescriptor:
    """Immutable description of one remote fetch or mutation.

    Reads target either a collection listing (``record_id`` unset) or a
    single record. Filters keep the order they were added in; that order is
    part of the descriptor's identity.
    """

    collection_id: str
    record_id: str | None = None
    method: HttpMethod = HttpMethod.GET
    where: tuple[WhereClause, ...] = ()
    sort: tuple[SortClause, ...] = ()
    limit: int | None = None
    after: str | None = None
    before: str | None = None
    call: str | None = None
    body: Mapping[str, Any] | None = field(default=None, hash=False)

    def __post_init__(self) -> None:
        if not self.collection_id:
            raise _invalid("collection id cannot be empty")
        if self.record_id is not None and not self.record_id:
            raise _invalid("record id cannot be empty")
        _check_where_fields(self.where)
        if self.limit is not None and (isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit <= 0):
            raise _invalid(f"limit must be a positive integer, got {self.limit!r}")
        if self.after is not None and self.before is not None:
            raise _invalid("cannot page both after and before a cursor")
        if self.call is not None and self.record_id is None:
            raise _invalid("method calls require a record id")
        if self.record_id is not None and self.has_parameters():
            raise _invalid("record lookups cannot carry filter, sort or pagination parameters")

    @property
    def path(self) -> str:
        path = f"/collections/{quote(self.collection_id, safe='')}/records"
        if self.record_id is not None:
            path += f"/{quote(self.record_id, safe='')}"
        if self.call is not None:
            path += f"/call/{quote(self.call, safe='')}"
        return path

    def has_parameters(self) -> bool:
        return bool(
            self.where
            or self.sort
            or self.limit is not None
            or self.after is not None
            or self.before is not None
        )

    def wire_params(self) -> dict[str, Any]:
        """Listing parameters in the shape the server expects."""
        params: dict[str, Any] = {}
        if self.where:
            where: dict[str, Any] = {}
            for clause in self.where:
                wire_op = WHERE_OPERATORS[clause.op]
                if wire_op is None:
                    where[clause.field] = clause.value
                    continue
                existing = where.get(clause.field)
                if not isinstance(existing, dict):
                    existing = {}
                existing[wire_op] = clause.value
                where[clause.field] = existing
            params["where"] = where
        if self.sort:
            params["sort"] = [[clause.field, clause.direction] for clause in self.sort]
        if self.limit is not None:
            params["limit"] = self.limit
        if self.after is not None:
            params["after"] = self.after
        if self.before is not None:
            params["before"] = self.before
        return params


@dataclass(frozen=True)
class TransportResponse:
    status: int
    data: Any
    headers: Mapping[str, str] = field(default_factory=dict)
