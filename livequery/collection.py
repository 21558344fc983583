from __future__ import annotations

import asyncio
import logging
import warnings
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from livequery.codec import deserialize_record, serialize_call_args
from livequery.contracts import (
    HttpMethod,
    RequestDescriptor,
    SnapshotErrorFn,
    SnapshotFn,
    SortDirection,
    TransportResponse,
    Unsubscribe,
)
from livequery.errors import RecordStoreError, create_error, wrap_error
from livequery.keys import collection_key
from livequery.query import Query
from livequery.record import CollectionRecord
from livequery.registry import SubscriptionRegistry
from livequery.schema import META_COLLECTION_ID, CollectionNode, find_collection, split_collection_id
from livequery.schemas import CollectionList, CollectionMeta, CollectionRecordResponse
from livequery.validator import SchemaValidator, Validator, validate_call_parameters

if TYPE_CHECKING:
    from livequery.client import Client

logger = logging.getLogger(__name__)


class Collection:
    """Handle on one remote collection.

    Owns two subscription registries, one for listings/queries and one for
    single-record lookups. Every query or record handle built from this
    collection subscribes through them, so equivalent subscriptions share a
    single poll loop.
    """

    def __init__(self, id: str, client: Client, validator: Validator | None = None) -> None:
        if not id:
            raise create_error("request/invalid-descriptor", "collection id cannot be empty")
        self.id = id
        self.client = client
        self.validator = validator or SchemaValidator()
        self._meta: CollectionMeta | None = None
        self._meta_task: asyncio.Task[CollectionMeta] | None = None
        self._schema: CollectionNode | None = None
        self._is_public: bool | None = None

        interval = client.settings.poll_interval_seconds
        self._query_subs: SubscriptionRegistry[CollectionList] = SubscriptionRegistry(
            client.transport,
            decode=self.decode_list,
            require_auth=self.requires_auth,
            interval_seconds=interval,
            sleep=client.sleep,
            name=f"{id} queries",
        )
        self._record_subs: SubscriptionRegistry[CollectionRecordResponse] = SubscriptionRegistry(
            client.transport,
            decode=self.decode_record,
            require_auth=self.requires_auth,
            interval_seconds=interval,
            sleep=client.sleep,
            name=f"{id} records",
        )

    def __repr__(self) -> str:
        return f"Collection({self.id!r})"

    @property
    def name(self) -> str:
        return split_collection_id(self.id)[1]

    # ── schema & access ──

    async def load(self) -> None:
        await self.get_schema()

    async def get_meta(self) -> CollectionMeta:
        """Fetch the collection meta once; concurrent callers share the request.

        A failed fetch is not cached, so the next call retries.
        """
        if self._meta is not None:
            return self._meta
        if self._meta_task is None:
            self._meta_task = asyncio.get_running_loop().create_task(self._fetch_meta())
            self._meta_task.add_done_callback(self._forget_failed_meta)
        return await asyncio.shield(self._meta_task)

    async def _fetch_meta(self) -> CollectionMeta:
        descriptor = RequestDescriptor(collection_id=META_COLLECTION_ID, record_id=self.id)
        try:
            response = await self.client.transport.send(descriptor)
            payload = response.data.get("data") if isinstance(response.data, dict) else None
            self._meta = CollectionMeta.model_validate(payload or {})
        except RecordStoreError as error:
            if error.reason == "record/not-found":
                raise create_error("collection/not-found", f"collection '{self.id}' not found") from error
            raise
        except Exception as error:
            raise wrap_error(error) from error
        return self._meta

    def _forget_failed_meta(self, task: asyncio.Task[CollectionMeta]) -> None:
        if task.cancelled() or task.exception() is not None:
            self._meta_task = None

    async def get_schema(self) -> CollectionNode:
        if self._schema is None:
            meta = await self.get_meta()
            self._schema = find_collection(meta.ast, self.id)
        return self._schema

    async def validate(self, data: Mapping[str, Any]) -> bool:
        schema = await self.get_schema()
        try:
            await self.validator.validate_set(schema, data)
        except RecordStoreError as error:
            logger.debug("validation failed for %s: %s", self.id, error)
            return False
        return True

    async def is_publicly_accessible(self) -> bool:
        # The meta collection is readable by everyone; checking it would recurse.
        if self.id == META_COLLECTION_ID:
            return True
        if self._is_public is None:
            schema = await self.get_schema()
            self._is_public = schema.is_public()
        return self._is_public

    async def requires_auth(self) -> bool:
        return not await self.is_publicly_accessible()

    # ── one-shot reads & writes ──

    async def create(self, args: Sequence[Any]) -> CollectionRecordResponse:
        schema = await self.get_schema()
        validate_call_parameters(schema, "constructor", args)
        descriptor = RequestDescriptor(
            collection_id=self.id,
            method=HttpMethod.POST,
            body={"args": serialize_call_args(args)},
        )
        response = await self.client.transport.send(descriptor, require_auth=True)
        return await self.decode_record(response)

    async def get(self) -> CollectionList:
        """Fetch the full listing once. Never deduplicated with subscriptions."""
        response = await self.client.transport.send(
            RequestDescriptor(collection_id=self.id),
            require_auth=await self.requires_auth(),
            cache_ttl_ms=self.client.settings.list_cache_ttl_ms,
        )
        return await self.decode_list(response)

    # ── handles ──

    def record(self, id: str) -> CollectionRecord:
        return CollectionRecord(id, self, self._record_subs)

    def doc(self, id: str) -> CollectionRecord:
        warnings.warn("Collection.doc() is deprecated, use Collection.record()", DeprecationWarning, stacklevel=2)
        return self.record(id)

    def where(self, field: str, op: str, value: Any) -> Query:
        return self._create_query().where(field, op, value)

    def sort(self, field: str, direction: SortDirection = "asc") -> Query:
        return self._create_query().sort(field, direction)

    def limit(self, limit: int) -> Query:
        return self._create_query().limit(limit)

    def after(self, cursor: str) -> Query:
        return self._create_query().after(cursor)

    def before(self, cursor: str) -> Query:
        return self._create_query().before(cursor)

    def on_snapshot(
        self,
        on_data: SnapshotFn[CollectionList],
        on_error: SnapshotErrorFn | None = None,
    ) -> Unsubscribe:
        return self._create_query().on_snapshot(on_data, on_error)

    def key(self) -> str:
        return collection_key(self.id)

    def stop(self) -> None:
        """Forced teardown of every subscription opened through this collection."""
        self._query_subs.stop_all()
        self._record_subs.stop_all()

    def _create_query(self) -> Query:
        return Query(self, self._query_subs)

    # ── decoding ──

    async def decode_record(self, response: TransportResponse) -> CollectionRecordResponse:
        payload = _expect_object(response.data)
        data = _expect_object(payload.get("data") or {})
        properties = await self._properties()
        return CollectionRecordResponse.model_validate({**payload, "data": deserialize_record(data, properties)})

    async def decode_list(self, response: TransportResponse) -> CollectionList:
        payload = _expect_object(response.data)
        rows = payload.get("data") or []
        if not isinstance(rows, list):
            raise create_error("transport/decode-error", "listing data must be a list")
        properties = await self._properties()
        records = []
        for row in rows:
            row = _expect_object(row)
            data = _expect_object(row.get("data") or {})
            records.append({**row, "data": deserialize_record(data, properties)})
        return CollectionList.model_validate(
            {**payload, "data": records, "cursor": payload.get("cursor") or {}}
        )

    async def _properties(self) -> list:
        if self.id == META_COLLECTION_ID:
            return []
        schema = await self.get_schema()
        return schema.properties()


def _expect_object(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise create_error("transport/decode-error", f"expected a JSON object, got {type(value).__name__}")
    return value
