from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from typing import Any, Awaitable, Callable, Protocol

import requests

from livequery.config.runtime import ClientSettings
from livequery.contracts import HttpMethod, RequestDescriptor, TransportResponse
from livequery.errors import create_error, error_from_body
from livequery.keys import canonical_params

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Polybase-Signature"
CLIENT_HEADER = "X-Polybase-Client"

Signer = Callable[[str], "str | Awaitable[str]"]


class Transport(Protocol):
    """Sends one described request.

    Implementations raise :class:`RecordStoreError` on any failure. They own
    request timeouts; callers never add their own.
    """

    async def send(
        self,
        descriptor: RequestDescriptor,
        require_auth: bool = False,
        cache_ttl_ms: int | None = None,
    ) -> TransportResponse: ...


class HttpTransport(Transport):
    def __init__(
        self,
        settings: ClientSettings,
        signer: Signer | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.signer = signer
        self.session = session or requests.Session()
        self._cache: dict[str, tuple[float, TransportResponse]] = {}

    async def send(
        self,
        descriptor: RequestDescriptor,
        require_auth: bool = False,
        cache_ttl_ms: int | None = None,
    ) -> TransportResponse:
        cacheable = descriptor.method is HttpMethod.GET and bool(cache_ttl_ms)
        cache_key = _cache_key(descriptor, require_auth)

        if cacheable:
            cached = self._cache.get(cache_key)
            if cached is not None and time.monotonic() < cached[0]:
                logger.debug("cache hit for %s", cache_key)
                return cached[1]
        elif descriptor.method is not HttpMethod.GET:
            self._cache.clear()

        body = json.dumps(dict(descriptor.body)) if descriptor.body is not None else None
        headers = {"Accept": "application/json", CLIENT_HEADER: self.settings.client_id}
        if body is not None:
            headers["Content-Type"] = "application/json"
        if require_auth:
            headers[SIGNATURE_HEADER] = await self._sign(body or "")

        response = await asyncio.to_thread(
            self._perform,
            descriptor.method.value,
            f"{self.settings.base_url.rstrip('/')}{descriptor.path}",
            _encode_params(descriptor),
            body,
            headers,
        )

        if cacheable:
            self._cache[cache_key] = (time.monotonic() + cache_ttl_ms / 1000.0, response)
        return response

    def clear_cache(self) -> None:
        self._cache.clear()

    def close(self) -> None:
        self.session.close()

    # ── internals ──

    async def _sign(self, body: str) -> str:
        if self.signer is None:
            raise create_error("auth/missing-signer")
        timestamp = int(time.time() * 1000)
        signature = self.signer(f"{timestamp}.{body}")
        if inspect.isawaitable(signature):
            signature = await signature
        return f"v=0,t={timestamp},h=eth-personal-sign,sig={signature}"

    def _perform(
        self,
        method: str,
        url: str,
        params: dict[str, str],
        body: str | None,
        headers: dict[str, str],
    ) -> TransportResponse:
        try:
            response = self.session.request(
                method,
                url,
                params=params or None,
                data=body,
                headers=headers,
                timeout=self.settings.timeout_seconds,
            )
        except requests.RequestException as error:
            raise create_error(
                "transport/network-error",
                f"{method} {url} failed: {error}",
                original_error=error,
            ) from error

        try:
            payload: Any = response.json() if response.content else None
        except ValueError as error:
            if not response.ok:
                raise error_from_body(response.status_code, None) from error
            raise create_error(
                "transport/decode-error",
                f"{method} {url} returned invalid JSON",
                status_code=response.status_code,
                original_error=error,
            ) from error

        if not response.ok:
            raise error_from_body(response.status_code, payload)

        return TransportResponse(
            status=response.status_code,
            data=payload,
            headers=dict(response.headers),
        )


def _encode_params(descriptor: RequestDescriptor) -> dict[str, str]:
    encoded: dict[str, str] = {}
    for name, value in descriptor.wire_params().items():
        if isinstance(value, (dict, list)):
            encoded[name] = json.dumps(value, separators=(",", ":"))
        else:
            encoded[name] = str(value)
    return encoded


def _cache_key(descriptor: RequestDescriptor, require_auth: bool) -> str:
    auth = "auth" if require_auth else "anon"
    return f"{descriptor.method} {descriptor.path}?{canonical_params(descriptor)}#{auth}"
