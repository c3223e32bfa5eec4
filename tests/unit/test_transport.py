# -*- coding: utf-8 -*-

"""
Unit tests for HttpxTransport.
Tests request building, status mapping and client lifecycle.
"""

import json

import httpx
import pytest

from tokenrelay.exceptions import HttpStatusError, TransportError
from tokenrelay.models import RequestDescriptor
from tokenrelay.network_errors import ErrorCategory
from tokenrelay.transport import HttpxTransport, Transport, decode_body

BASE_URL = "http://api.test/v1/api"


def make_transport(handler):
    shared = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpxTransport(BASE_URL, shared_client=shared), shared


class TestHttpxTransportSend:
    """Tests for send()."""

    @pytest.mark.asyncio
    async def test_sends_method_path_body_params_headers(self):
        """
        What it does: Sends a fully populated descriptor.
        Purpose: Ensure every descriptor field reaches the wire.
        """
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": 1})

        transport, shared = make_transport(handler)
        descriptor = RequestDescriptor(
            "POST", "/orders", headers={"x-client-id": "U1"}, json={"symbol": "BTC"}, params={"dry_run": "1"}
        )

        response = await transport.send(descriptor)

        print("Verification: Request built from descriptor...")
        assert response.status_code == 201
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/api/orders"
        assert request.url.params["dry_run"] == "1"
        assert request.headers["x-client-id"] == "U1"
        assert json.loads(request.content) == {"symbol": "BTC"}

        await shared.aclose()

    @pytest.mark.asyncio
    async def test_non_2xx_raises_http_status_error(self):
        """
        What it does: Server answers 404 with JSON.
        Purpose: Ensure HttpStatusError with status, decoded body and descriptor.
        """
        transport, shared = make_transport(lambda request: httpx.Response(404, json={"message": "Not found"}))
        descriptor = RequestDescriptor("GET", "/missing")

        with pytest.raises(HttpStatusError) as exc_info:
            await transport.send(descriptor)

        assert exc_info.value.status_code == 404
        assert exc_info.value.body == {"message": "Not found"}
        assert exc_info.value.descriptor is descriptor
        assert exc_info.value.message == "Request failed with status code 404"

        await shared.aclose()

    @pytest.mark.asyncio
    async def test_network_failure_raises_transport_error(self):
        """
        What it does: The handler raises httpx.ReadTimeout.
        Purpose: Ensure TransportError with classification and the original as cause.
        """
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        transport, shared = make_transport(handler)

        with pytest.raises(TransportError) as exc_info:
            await transport.send(RequestDescriptor("GET", "/slow"))

        assert exc_info.value.status_code is None
        assert exc_info.value.info.category == ErrorCategory.TIMEOUT_READ
        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)

        await shared.aclose()


class TestHttpxTransportLifecycle:
    """Tests for owned and shared clients."""

    @pytest.mark.asyncio
    async def test_owned_client_created_lazily_and_closed(self):
        """
        What it does: Uses a transport without a shared client.
        Purpose: Ensure it creates its own client on demand and closes it.
        """
        transport = HttpxTransport(BASE_URL, timeout=5)
        assert transport.client is None

        client = transport._get_client()
        assert client.base_url == httpx.URL(BASE_URL + "/")
        assert client.timeout.read == 5
        assert client.headers["content-type"] == "application/json"

        await transport.close()
        assert client.is_closed

    @pytest.mark.asyncio
    async def test_shared_client_not_closed(self):
        """
        What it does: Closes a transport using a shared client.
        Purpose: Ensure the application-level client stays open.
        """
        shared = httpx.AsyncClient()
        transport = HttpxTransport(BASE_URL, shared_client=shared)

        await transport.close()

        assert not shared.is_closed
        await shared.aclose()


class TestDecodeBody:
    """Tests for decode_body()."""

    def test_json(self):
        assert decode_body(httpx.Response(200, json={"a": 1})) == {"a": 1}

    def test_text_fallback(self):
        assert decode_body(httpx.Response(502, text="Bad Gateway")) == "Bad Gateway"

    def test_empty(self):
        assert decode_body(httpx.Response(204)) == ""


class TestTransportInterface:
    """Tests for the Transport base class."""

    def test_base_transport_is_abstract(self):
        """
        What it does: Instantiates the base class.
        Purpose: Ensure a transport without send() is rejected up front.
        """
        with pytest.raises(TypeError):
            Transport()

    @pytest.mark.asyncio
    async def test_subclass_gets_default_close(self):
        """
        What it does: Defines a transport that only implements send().
        Purpose: Ensure close() has a no-op default.
        """
        class StaticTransport(Transport):
            async def send(self, descriptor: RequestDescriptor) -> httpx.Response:
                return httpx.Response(200)

        transport = StaticTransport()

        response = await transport.send(RequestDescriptor("GET", "/"))
        await transport.close()

        assert response.status_code == 200
