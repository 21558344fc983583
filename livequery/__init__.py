from livequery.client import Client
from livequery.collection import Collection
from livequery.config.runtime import ClientSettings
from livequery.contracts import (
    HttpMethod,
    RequestDescriptor,
    SortClause,
    TransportResponse,
    WhereClause,
)
from livequery.errors import RecordStoreError, create_error
from livequery.keys import KeyTag, derive_key
from livequery.query import Query
from livequery.record import CollectionRecord
from livequery.registry import SubscriptionRegistry
from livequery.schemas import CollectionList, CollectionMeta, CollectionRecordResponse
from livequery.subscription import PollingSubscription, SubscriptionState
from livequery.transport import HttpTransport, Transport

__all__ = [
    "Client",
    "ClientSettings",
    "Collection",
    "CollectionRecord",
    "Query",
    "RequestDescriptor",
    "WhereClause",
    "SortClause",
    "HttpMethod",
    "TransportResponse",
    "KeyTag",
    "derive_key",
    "PollingSubscription",
    "SubscriptionState",
    "SubscriptionRegistry",
    "Transport",
    "HttpTransport",
    "CollectionMeta",
    "CollectionRecordResponse",
    "CollectionList",
    "RecordStoreError",
    "create_error",
]
