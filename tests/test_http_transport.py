from __future__ import annotations

import json
import unittest
from unittest.mock import MagicMock, patch

import requests

from livequery.config.runtime import ClientSettings
from livequery.contracts import HttpMethod, RequestDescriptor, SortClause, WhereClause
from livequery.errors import RecordStoreError
from livequery.transport import SIGNATURE_HEADER, HttpTransport


def _response(status=200, payload=None, content=None):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 400
    response.headers = {"Content-Type": "application/json"}
    if content is None:
        content = json.dumps(payload).encode() if payload is not None else b""
    response.content = content
    if payload is not None:
        response.json.return_value = payload
    else:
        response.json.side_effect = ValueError("no json")
    return response


def _session(*responses):
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = list(responses)
    return session


LISTING = RequestDescriptor(collection_id="ns/City")


class TestHttpTransportRequests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.settings = ClientSettings(base_url="https://store.test/v0/", timeout_seconds=5)

    async def test_listing_request_shape(self):
        session = _session(_response(payload={"data": []}))
        transport = HttpTransport(self.settings, session=session)
        descriptor = RequestDescriptor(
            collection_id="ns/City",
            where=(WhereClause("population", ">=", 10),),
            sort=(SortClause("name", "desc"),),
            limit=3,
        )

        response = await transport.send(descriptor)

        self.assertEqual(response.status, 200)
        self.assertEqual(response.data, {"data": []})
        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        self.assertEqual(method, "GET")
        self.assertEqual(url, "https://store.test/v0/collections/ns%2FCity/records")
        self.assertEqual(
            kwargs["params"],
            {"where": '{"population":{"$gte":10}}', "sort": '[["name","desc"]]', "limit": "3"},
        )
        self.assertIsNone(kwargs["data"])
        self.assertEqual(kwargs["timeout"], 5)
        self.assertEqual(kwargs["headers"]["X-Polybase-Client"], "livequery-py")
        self.assertNotIn(SIGNATURE_HEADER, kwargs["headers"])

    async def test_write_request_sends_json_body(self):
        session = _session(_response(payload={"data": {"id": "rome"}}))
        transport = HttpTransport(self.settings, signer=lambda message: "0xsig", session=session)
        descriptor = RequestDescriptor(collection_id="ns/City", method=HttpMethod.POST, body={"args": ["rome"]})

        await transport.send(descriptor, require_auth=True)

        kwargs = session.request.call_args.kwargs
        self.assertEqual(session.request.call_args.args[0], "POST")
        self.assertEqual(kwargs["data"], '{"args": ["rome"]}')
        self.assertEqual(kwargs["headers"]["Content-Type"], "application/json")
        self.assertIsNone(kwargs["params"])

    async def test_empty_body_yields_none_data(self):
        transport = HttpTransport(self.settings, session=_session(_response(status=200)))

        response = await transport.send(RequestDescriptor(collection_id="c", record_id="r", method=HttpMethod.DELETE))

        self.assertIsNone(response.data)


class TestHttpTransportSigning(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.settings = ClientSettings(base_url="https://store.test/v0")

    async def test_missing_signer_fails_before_network(self):
        session = _session(_response(payload={}))
        transport = HttpTransport(self.settings, session=session)

        with self.assertRaises(RecordStoreError) as ctx:
            await transport.send(LISTING, require_auth=True)

        self.assertEqual(ctx.exception.reason, "auth/missing-signer")
        session.request.assert_not_called()

    async def test_sync_signer_signs_timestamp_and_body(self):
        signed = []

        def signer(message):
            signed.append(message)
            return "0xabc"

        session = _session(_response(payload={"data": {}}))
        transport = HttpTransport(self.settings, signer=signer, session=session)
        descriptor = RequestDescriptor(collection_id="c", record_id="r", method=HttpMethod.PUT, body={"id": "r"})

        with patch("livequery.transport.time") as clock:
            clock.time.return_value = 1700000000.5
            clock.monotonic.return_value = 0.0
            await transport.send(descriptor, require_auth=True)

        self.assertEqual(signed, ['1700000000500.{"id": "r"}'])
        header = session.request.call_args.kwargs["headers"][SIGNATURE_HEADER]
        self.assertEqual(header, "v=0,t=1700000000500,h=eth-personal-sign,sig=0xabc")

    async def test_async_signer_is_awaited(self):
        async def signer(message):
            return "0xasync"

        session = _session(_response(payload={"data": []}))
        transport = HttpTransport(self.settings, signer=signer, session=session)

        await transport.send(LISTING, require_auth=True)

        header = session.request.call_args.kwargs["headers"][SIGNATURE_HEADER]
        self.assertTrue(header.endswith(",sig=0xasync"))
        self.assertIn(",h=eth-personal-sign,", header)


class TestHttpTransportCache(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.settings = ClientSettings(base_url="https://store.test/v0")

    async def test_cached_get_is_served_until_expiry(self):
        session = _session(_response(payload={"data": [1]}), _response(payload={"data": [2]}))
        transport = HttpTransport(self.settings, session=session)

        with patch("livequery.transport.time") as clock:
            clock.monotonic.return_value = 100.0
            first = await transport.send(LISTING, cache_ttl_ms=1000)
            clock.monotonic.return_value = 100.5
            second = await transport.send(LISTING, cache_ttl_ms=1000)
            clock.monotonic.return_value = 101.5
            third = await transport.send(LISTING, cache_ttl_ms=1000)

        self.assertIs(first, second)
        self.assertEqual(third.data, {"data": [2]})
        self.assertEqual(session.request.call_count, 2)

    async def test_uncached_get_always_hits_network(self):
        session = _session(_response(payload={"data": []}), _response(payload={"data": []}))
        transport = HttpTransport(self.settings, session=session)

        await transport.send(LISTING)
        await transport.send(LISTING)

        self.assertEqual(session.request.call_count, 2)

    async def test_cache_is_split_by_auth_and_parameters(self):
        session = _session(*[_response(payload={"data": []}) for _ in range(3)])
        transport = HttpTransport(self.settings, signer=lambda m: "0x", session=session)

        await transport.send(LISTING, cache_ttl_ms=60000)
        await transport.send(LISTING, require_auth=True, cache_ttl_ms=60000)
        await transport.send(RequestDescriptor(collection_id="ns/City", limit=1), cache_ttl_ms=60000)

        self.assertEqual(session.request.call_count, 3)

    async def test_writes_invalidate_the_cache(self):
        session = _session(
            _response(payload={"data": []}),
            _response(payload={"data": {}}),
            _response(payload={"data": []}),
        )
        transport = HttpTransport(self.settings, signer=lambda m: "0x", session=session)
        write = RequestDescriptor(collection_id="ns/City", method=HttpMethod.POST, body={"args": []})

        await transport.send(LISTING, cache_ttl_ms=60000)
        await transport.send(write, require_auth=True)
        await transport.send(LISTING, cache_ttl_ms=60000)

        self.assertEqual(session.request.call_count, 3)

    async def test_clear_cache(self):
        session = _session(_response(payload={"data": []}), _response(payload={"data": []}))
        transport = HttpTransport(self.settings, session=session)

        await transport.send(LISTING, cache_ttl_ms=60000)
        transport.clear_cache()
        await transport.send(LISTING, cache_ttl_ms=60000)

        self.assertEqual(session.request.call_count, 2)

    async def test_failed_request_is_not_cached(self):
        session = _session(
            _response(status=500, payload={"error": {"reason": "unknown/error"}}),
            _response(payload={"data": []}),
        )
        transport = HttpTransport(self.settings, session=session)

        with self.assertRaises(RecordStoreError):
            await transport.send(LISTING, cache_ttl_ms=60000)
        response = await transport.send(LISTING, cache_ttl_ms=60000)

        self.assertEqual(response.data, {"data": []})


class TestHttpTransportErrors(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.settings = ClientSettings(base_url="https://store.test/v0")

    async def _send_expecting_error(self, session) -> RecordStoreError:
        transport = HttpTransport(self.settings, session=session)
        with self.assertRaises(RecordStoreError) as ctx:
            await transport.send(RequestDescriptor(collection_id="ns/City", record_id="x"))
        return ctx.exception

    async def test_server_error_body_is_mapped(self):
        body = {"error": {"reason": "record/not-found", "message": "record x not found"}}

        error = await self._send_expecting_error(_session(_response(status=404, payload=body)))

        self.assertEqual(error.reason, "record/not-found")
        self.assertEqual(error.message, "record x not found")
        self.assertEqual(error.status_code, 404)
        self.assertEqual(error.data, body)

    async def test_unstructured_http_error(self):
        error = await self._send_expecting_error(_session(_response(status=502, payload={"oops": True})))

        self.assertEqual(error.reason, "transport/http-error")
        self.assertEqual(error.status_code, 502)

    async def test_non_json_error_response(self):
        error = await self._send_expecting_error(_session(_response(status=503, content=b"<html>")))

        self.assertEqual(error.reason, "transport/http-error")
        self.assertEqual(error.status_code, 503)

    async def test_invalid_json_success_response(self):
        error = await self._send_expecting_error(_session(_response(status=200, content=b"not json")))

        self.assertEqual(error.reason, "transport/decode-error")
        self.assertIsInstance(error.original_error, ValueError)

    async def test_network_failure(self):
        session = MagicMock(spec=requests.Session)
        session.request.side_effect = requests.ConnectionError("connection refused")

        error = await self._send_expecting_error(session)

        self.assertEqual(error.reason, "transport/network-error")
        self.assertIsInstance(error.original_error, requests.ConnectionError)

    def test_close_closes_session(self):
        session = MagicMock(spec=requests.Session)

        HttpTransport(self.settings, session=session).close()

        session.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
