from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Sequence

from livequery.codec import serialize_call_args
from livequery.contracts import (
    HttpMethod,
    RequestDescriptor,
    SnapshotErrorFn,
    SnapshotFn,
    Unsubscribe,
)
from livequery.errors import create_error
from livequery.keys import KeyTag, derive_key
from livequery.registry import SubscriptionRegistry
from livequery.schemas import CollectionRecordResponse
from livequery.validator import validate_call_parameters

if TYPE_CHECKING:
    from livequery.collection import Collection


class CollectionRecord:
    def __init__(
        self,
        id: str,
        collection: Collection,
        registry: SubscriptionRegistry[CollectionRecordResponse],
    ) -> None:
        self.id = id
        self.collection = collection
        self._registry = registry
        self._descriptor = RequestDescriptor(collection_id=collection.id, record_id=id)

    def __repr__(self) -> str:
        return f"CollectionRecord({self.key()!r})"

    async def get(self) -> CollectionRecordResponse:
        response = await self.collection.client.transport.send(
            self._descriptor,
            require_auth=await self.collection.requires_auth(),
        )
        return await self.collection.decode_record(response)

    async def call(self, method: str, args: Sequence[Any] = ()) -> CollectionRecordResponse:
        schema = await self.collection.get_schema()
        validate_call_parameters(schema, method, args)
        descriptor = RequestDescriptor(
            collection_id=self.collection.id,
            record_id=self.id,
            method=HttpMethod.POST,
            call=method,
            body={"args": serialize_call_args(args)},
        )
        response = await self.collection.client.transport.send(descriptor, require_auth=True)
        return await self.collection.decode_record(response)

    async def set(self, data: Mapping[str, Any]) -> CollectionRecordResponse:
        if not await self.collection.validate(data):
            raise create_error("record/invalid", f"record '{self.id}' data is not valid for '{self.collection.id}'")
        descriptor = RequestDescriptor(
            collection_id=self.collection.id,
            record_id=self.id,
            method=HttpMethod.PUT,
            body=dict(data),
        )
        response = await self.collection.client.transport.send(descriptor, require_auth=True)
        return await self.collection.decode_record(response)

    async def delete(self) -> Any:
        descriptor = RequestDescriptor(
            collection_id=self.collection.id,
            record_id=self.id,
            method=HttpMethod.DELETE,
        )
        response = await self.collection.client.transport.send(descriptor, require_auth=True)
        return response.data

    def reference(self) -> dict[str, str]:
        return {"collectionId": self.collection.id, "id": self.id}

    def key(self) -> str:
        return derive_key(KeyTag.RECORD, self._descriptor)

    def request(self) -> RequestDescriptor:
        return self._descriptor

    def on_snapshot(
        self,
        on_data: SnapshotFn[CollectionRecordResponse],
        on_error: SnapshotErrorFn | None = None,
    ) -> Unsubscribe:
        return self._registry.subscribe(self.key(), self.request, on_data, on_error)
