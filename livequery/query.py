from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

from livequery.contracts import (
    RequestDescriptor,
    SnapshotErrorFn,
    SnapshotFn,
    SortClause,
    SortDirection,
    Unsubscribe,
    WhereClause,
)
from livequery.keys import KeyTag, derive_key
from livequery.registry import SubscriptionRegistry
from livequery.schemas import CollectionList

if TYPE_CHECKING:
    from livequery.collection import Collection


class Query:
    """Filtered, sorted or paginated listing of one collection.

    Builder methods return a new query and leave this one untouched, so a
    key taken earlier keeps describing the same request.
    """

    def __init__(
        self,
        collection: Collection,
        registry: SubscriptionRegistry[CollectionList],
        descriptor: RequestDescriptor | None = None,
    ) -> None:
        self.collection = collection
        self._registry = registry
        self._descriptor = descriptor or RequestDescriptor(collection_id=collection.id)

    def __repr__(self) -> str:
        return f"Query({self.key()!r})"

    def where(self, field: str, op: str, value: Any) -> Query:
        return self._derive(where=self._descriptor.where + (WhereClause(field, op, value),))

    def sort(self, field: str, direction: SortDirection = "asc") -> Query:
        return self._derive(sort=self._descriptor.sort + (SortClause(field, direction),))

    def limit(self, limit: int) -> Query:
        return self._derive(limit=limit)

    def after(self, cursor: str) -> Query:
        return self._derive(after=cursor, before=None)

    def before(self, cursor: str) -> Query:
        return self._derive(before=cursor, after=None)

    def key(self) -> str:
        return derive_key(KeyTag.QUERY, self._descriptor)

    def request(self) -> RequestDescriptor:
        return self._descriptor

    async def get(self) -> CollectionList:
        """Run the query once, bypassing subscriptions."""
        response = await self.collection.client.transport.send(
            self._descriptor,
            require_auth=await self.collection.requires_auth(),
        )
        return await self.collection.decode_list(response)

    def on_snapshot(
        self,
        on_data: SnapshotFn[CollectionList],
        on_error: SnapshotErrorFn | None = None,
    ) -> Unsubscribe:
        return self._registry.subscribe(self.key(), self.request, on_data, on_error)

    def _derive(self, **changes: Any) -> Query:
        return Query(self.collection, self._registry, replace(self._descriptor, **changes))
