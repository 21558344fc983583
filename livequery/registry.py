from __future__ import annotations

import asyncio
import logging
from typing import Callable, Generic, Iterator, TypeVar

from livequery.contracts import RequestDescriptor, SnapshotErrorFn, SnapshotFn, Unsubscribe
from livequery.subscription import (
    DEFAULT_INTERVAL_SECONDS,
    AuthResolver,
    Decoder,
    PollingSubscription,
    Sleep,
)
from livequery.transport import Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

DescriptorFactory = Callable[[], RequestDescriptor]


class SubscriptionRegistry(Generic[T]):
    """Keyed cache of polling subscriptions owned by one handle.

    Usage:
        registry = SubscriptionRegistry(transport, decode=decode_list)
        unsubscribe = registry.get_or_create(key, query.request).subscribe(on_data, on_error)

    Entries are created lazily and evicted once their poll loop has gone
    idle with no listeners left, unless ``evict_idle`` is false, in which
    case idle entries are kept (without polling) for reuse.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        decode: Decoder[T] | None = None,
        require_auth: bool | AuthResolver = False,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        sleep: Sleep = asyncio.sleep,
        evict_idle: bool = True,
        name: str = "subscriptions",
    ) -> None:
        self.transport = transport
        self.interval_seconds = interval_seconds
        self.evict_idle = evict_idle
        self.name = name
        self._decode = decode
        self._require_auth = require_auth
        self._sleep = sleep
        self._entries: dict[str, PollingSubscription[T]] = {}

    def get_or_create(self, key: str, descriptor_factory: DescriptorFactory) -> PollingSubscription[T]:
        subscription = self._entries.get(key)
        if subscription is not None:
            return subscription

        subscription = PollingSubscription(
            descriptor_factory(),
            self.transport,
            key=key,
            decode=self._decode,
            require_auth=self._require_auth,
            interval_seconds=self.interval_seconds,
            sleep=self._sleep,
            on_idle=self._evict,
        )
        self._entries[key] = subscription
        logger.debug("%s: created subscription %s", self.name, key)
        return subscription

    def subscribe(
        self,
        key: str,
        descriptor_factory: DescriptorFactory,
        on_data: SnapshotFn[T],
        on_error: SnapshotErrorFn | None = None,
    ) -> Unsubscribe:
        return self.get_or_create(key, descriptor_factory).subscribe(on_data, on_error)

    def get(self, key: str) -> PollingSubscription[T] | None:
        return self._entries.get(key)

    def keys(self) -> list[str]:
        return list(self._entries)

    def stop_all(self) -> None:
        """Forced teardown of every subscription in this registry."""
        for subscription in list(self._entries.values()):
            subscription.stop()
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def _evict(self, subscription: PollingSubscription[T]) -> None:
        if not self.evict_idle:
            return
        if self._entries.get(subscription.key) is not subscription:
            return
        if subscription.listener_count or subscription.active:
            return
        del self._entries[subscription.key]
        logger.debug("%s: evicted idle subscription %s", self.name, subscription.key)
