"""Polling subscription: one poll loop shared by every listener of one request.

The loop is an asyncio task that runs a cycle, then sleeps a fixed delay,
then runs the next cycle. At most one request per subscription is ever
outstanding. The task exists only while there are listeners:

- the first ``subscribe`` starts it (cycle 0 runs on the next loop turn)
- removing the last listener cancels it if it is sleeping; a cycle that is
  already in flight completes and its result is dropped
- ``stop`` cancels it unconditionally
"""
from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable, Generic, TypeVar

from livequery.contracts import (
    RequestDescriptor,
    SnapshotErrorFn,
    SnapshotFn,
    TransportResponse,
    Unsubscribe,
)
from livequery.errors import wrap_error
from livequery.transport import Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL_SECONDS = 0.1

Decoder = Callable[[TransportResponse], Awaitable[T]]
AuthResolver = Callable[[], Awaitable[bool]]
Sleep = Callable[[float], Awaitable[Any]]


class SubscriptionState(StrEnum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    IN_FLIGHT = "in-flight"


@dataclass(frozen=True, eq=False)
class Listener(Generic[T]):
    on_data: SnapshotFn[T]
    on_error: SnapshotErrorFn | None = None


async def _raw_data(response: TransportResponse) -> Any:
    return response.data


class PollingSubscription(Generic[T]):
    def __init__(
        self,
        descriptor: RequestDescriptor,
        transport: Transport,
        *,
        key: str | None = None,
        decode: Decoder[T] | None = None,
        require_auth: bool | AuthResolver = False,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        sleep: Sleep = asyncio.sleep,
        on_idle: Callable[["PollingSubscription[T]"], None] | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.descriptor = descriptor
        self.transport = transport
        self.key = key or descriptor.path
        self.interval_seconds = interval_seconds
        self._decode: Decoder[T] = decode or _raw_data
        self._require_auth = require_auth
        self._sleep = sleep
        self._on_idle = on_idle

        self._listeners: dict[int, Listener[T]] = {}
        self._tokens = itertools.count()
        self._task: asyncio.Task[None] | None = None
        self._state = SubscriptionState.IDLE

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def active(self) -> bool:
        return self._task is not None

    def subscribe(self, on_data: SnapshotFn[T], on_error: SnapshotErrorFn | None = None) -> Unsubscribe:
        """Register a listener pair and return the function that removes it.

        A listener joining an active subscription receives results from the
        next cycle onward; the last result is never replayed.
        """
        if not callable(on_data):
            raise TypeError("on_data must be callable")
        if on_error is not None and not callable(on_error):
            raise TypeError("on_error must be callable")

        if self._task is None:
            # Fails synchronously when there is no running event loop.
            loop = asyncio.get_running_loop()
        else:
            loop = None

        token = next(self._tokens)
        self._listeners[token] = Listener(on_data, on_error)

        if loop is not None:
            self._task = loop.create_task(self._run(), name=f"poll {self.key}")
            logger.debug("subscription %s started", self.key)

        def unsubscribe() -> None:
            self._remove(token)

        return unsubscribe

    def stop(self) -> None:
        """Cancel the poll loop and drop every listener."""
        self._listeners.clear()
        if self._task is not None:
            self._cancel()
            logger.debug("subscription %s stopped", self.key)
        self._release_if_idle()

    # ── internals ──

    def _remove(self, token: int) -> None:
        if self._listeners.pop(token, None) is None:
            return
        if self._listeners:
            return
        if self._task is not None and self._state is not SubscriptionState.IN_FLIGHT:
            self._cancel()
            logger.debug("subscription %s has no listeners, poll loop cancelled", self.key)
        self._release_if_idle()

    def _cancel(self) -> None:
        task, self._task = self._task, None
        self._state = SubscriptionState.IDLE
        if task is not None:
            task.cancel()

    def _release_if_idle(self) -> None:
        if self._listeners or self._task is not None:
            return
        if self._on_idle is not None:
            self._on_idle(self)

    async def _run(self) -> None:
        current = asyncio.current_task()
        try:
            while self._listeners:
                self._state = SubscriptionState.IN_FLIGHT
                await self._poll_once()
                if not self._listeners:
                    break
                self._state = SubscriptionState.SCHEDULED
                await self._sleep(self.interval_seconds)
        finally:
            if self._task is current:
                self._task = None
                self._state = SubscriptionState.IDLE
                logger.debug("subscription %s drained", self.key)
                self._release_if_idle()

    async def _poll_once(self) -> None:
        # Listeners added while this cycle is in flight wait for the next one.
        listeners = list(self._listeners.items())
        try:
            require_auth = self._require_auth
            if callable(require_auth):
                require_auth = await require_auth()
            response = await self.transport.send(self.descriptor, require_auth=bool(require_auth))
            result = await self._decode(response)
        except Exception as exc:
            error = wrap_error(exc)
            logger.warning("poll cycle for %s failed: %s", self.key, error)
            await self._dispatch(listeners, error=error)
            return
        await self._dispatch(listeners, result=result)

    async def _dispatch(
        self,
        listeners: list[tuple[int, Listener[T]]],
        *,
        result: Any = None,
        error: Exception | None = None,
    ) -> None:
        for token, listener in listeners:
            if token not in self._listeners:
                continue
            if error is not None:
                callback = listener.on_error
                if callback is None:
                    continue
                argument: Any = error
            else:
                callback = listener.on_data
                argument = result
            try:
                outcome = callback(argument)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("listener for %s raised", self.key)
