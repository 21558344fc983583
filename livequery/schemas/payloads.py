from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CollectionMeta(BaseModel):
    """Record of the built-in ``Collection`` collection describing one collection."""

    id: str = Field(min_length=1)
    ast: str
    code: str | None = None
    publicKey: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


class CollectionRecordResponse(BaseModel):
    """One record as returned by record lookups, mutations and listings."""

    data: dict[str, Any] = Field(default_factory=dict)
    block: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")

    @property
    def id(self) -> str | None:
        value = self.data.get("id")
        return str(value) if value is not None else None


class Cursor(BaseModel):
    before: str | None = None
    after: str | None = None

    model_config = ConfigDict(extra="allow")


class CollectionList(BaseModel):
    data: list[CollectionRecordResponse] = Field(default_factory=list)
    cursor: Cursor = Field(default_factory=Cursor)

    model_config = ConfigDict(extra="allow")
