from __future__ import annotations

import asyncio
import logging

from livequery.collection import Collection
from livequery.config.runtime import ClientSettings
from livequery.subscription import Sleep
from livequery.transport import HttpTransport, Signer, Transport
from livequery.validator import Validator

logger = logging.getLogger(__name__)


class Client:
    """Entry point: one client per remote store.

    Collection handles are cached by id so every caller asking for the same
    collection shares its subscription registries.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        transport: Transport | None = None,
        signer: Signer | None = None,
        validator: Validator | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings or ClientSettings.from_env()
        self.transport: Transport = transport or HttpTransport(self.settings, signer=signer)
        self.validator = validator
        self.sleep = sleep
        self._collections: dict[str, Collection] = {}

    def collection(self, collection_id: str) -> Collection:
        collection = self._collections.get(collection_id)
        if collection is None:
            collection = Collection(collection_id, self, validator=self.validator)
            self._collections[collection_id] = collection
        return collection

    def stop(self) -> None:
        """Cancel every active subscription opened through this client."""
        for collection in self._collections.values():
            collection.stop()

    def close(self) -> None:
        self.stop()
        close = getattr(self.transport, "close", None)
        if callable(close):
            close()
        logger.debug("client for %s closed", self.settings.base_url)
