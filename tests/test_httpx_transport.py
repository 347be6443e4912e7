"""Tests for the httpx-based transport using httpx.MockTransport."""

import json

import httpx
import pytest

from randomorg_client.adapters.transport.httpx_transport import HttpxTransport
from randomorg_client.core.errors import BadHTTPResponseError, SendTimeoutError, TransportError
from randomorg_client.schemas.requests import build_request

ENDPOINT = "https://api.random.org/json-rpc/4/invoke"


def _transport(handler) -> HttpxTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxTransport(ENDPOINT, client=client)


@pytest.mark.asyncio
async def test_posts_json_and_returns_parsed_body() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "result": {"ok": True}, "id": seen["body"]["id"]})

    transport = _transport(handler)
    rpc_request = build_request("getUsage", {}, api_key="key")

    body = await transport.invoke(rpc_request, timeout_s=5)

    assert body["result"] == {"ok": True}
    assert seen["method"] == "POST"
    assert seen["url"] == ENDPOINT
    assert seen["body"] == rpc_request
    await transport.aclose()


@pytest.mark.asyncio
async def test_non_2xx_status_raises_bad_http_response() -> None:
    transport = _transport(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(BadHTTPResponseError) as exc_info:
        await transport.invoke(build_request("getUsage", {}), timeout_s=5)

    assert exc_info.value.status_code == 503
    assert str(exc_info.value) == "Error: 503"


@pytest.mark.asyncio
async def test_timeout_raises_send_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    transport = _transport(handler)

    with pytest.raises(SendTimeoutError, match="2000ms"):
        await transport.invoke(build_request("getUsage", {}), timeout_s=2)


@pytest.mark.asyncio
async def test_connection_error_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    transport = _transport(handler)

    with pytest.raises(TransportError, match="refused"):
        await transport.invoke(build_request("getUsage", {}), timeout_s=2)


@pytest.mark.asyncio
async def test_invalid_json_body_raises_transport_error() -> None:
    transport = _transport(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(TransportError, match="not valid JSON"):
        await transport.invoke(build_request("getUsage", {}), timeout_s=2)


@pytest.mark.asyncio
async def test_non_object_body_raises_transport_error() -> None:
    transport = _transport(lambda request: httpx.Response(200, json=[1, 2, 3]))

    with pytest.raises(TransportError, match="not a JSON object"):
        await transport.invoke(build_request("getUsage", {}), timeout_s=2)


@pytest.mark.asyncio
async def test_client_is_created_lazily_and_closed() -> None:
    transport = HttpxTransport(ENDPOINT)

    assert transport._client is None
    client = transport.client
    assert isinstance(client, httpx.AsyncClient)

    await transport.aclose()
    assert transport._client is None
    assert client.is_closed
