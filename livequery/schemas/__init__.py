from livequery.schemas.payloads import (
    CollectionList,
    CollectionMeta,
    CollectionRecordResponse,
    Cursor,
)

__all__ = [
    "CollectionMeta",
    "CollectionRecordResponse",
    "CollectionList",
    "Cursor",
]
