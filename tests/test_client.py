"""Integration tests for the client facade over a fake transport."""

import asyncio

import pytest

from fakes import FakeClock, FakeTransport, RecordingSleep, ok_response
from randomorg_client.core.config import settings
from randomorg_client.core.errors import InvalidRequestError
from randomorg_client.services.client import RandomOrgClient, SignedResult
from randomorg_client.services.registry import DispatcherRegistry, get_registry


async def _drain() -> None:
    for _ in range(20):
        await asyncio.sleep(0)


def _client(transport: FakeTransport, clock: FakeClock, **kwargs) -> RandomOrgClient:
    return RandomOrgClient("key-1", transport=transport, clock=clock, sleep=RecordingSleep(), **kwargs)


class TestBasicMethods:
    @pytest.mark.asyncio
    async def test_generate_integers_sends_keyed_jsonrpc_request(
        self, transport: FakeTransport, clock: FakeClock
    ) -> None:
        client = _client(transport, clock)

        values = await client.generate_integers(5, 1, 10)

        assert values == [0, 1, 2, 3, 4]
        request = transport.requests[0]
        assert request["jsonrpc"] == "2.0"
        assert request["method"] == "generateIntegers"
        assert request["params"] == {
            "n": 5,
            "min": 1,
            "max": 10,
            "replacement": True,
            "base": 10,
            "pregeneratedRandomization": None,
            "apiKey": "key-1",
        }
        assert len(request["id"]) == 36

    @pytest.mark.asyncio
    async def test_each_request_gets_a_fresh_id(self, transport: FakeTransport, clock: FakeClock) -> None:
        client = _client(transport, clock)

        await client.generate_uuids(1)
        await client.generate_uuids(1)

        assert transport.requests[0]["id"] != transport.requests[1]["id"]

    @pytest.mark.asyncio
    async def test_generate_gaussians_uses_camel_case_params(
        self, transport: FakeTransport, clock: FakeClock
    ) -> None:
        client = _client(transport, clock)

        await client.generate_gaussians(3, 0.0, 1.0, 6)

        params = transport.requests[0]["params"]
        assert params["standardDeviation"] == 1.0
        assert params["significantDigits"] == 6

    @pytest.mark.asyncio
    async def test_invalid_options_never_reach_the_network(
        self, transport: FakeTransport, clock: FakeClock
    ) -> None:
        client = _client(transport, clock)

        with pytest.raises(InvalidRequestError, match="IntegerOptions"):
            await client.generate_integers(0, 1, 10)

        with pytest.raises(InvalidRequestError):
            await client.generate_blobs(1, 7)

        assert transport.requests == []


class TestSignedMethods:
    @pytest.mark.asyncio
    async def test_signed_integers_return_data_random_and_signature(
        self, transport: FakeTransport, clock: FakeClock
    ) -> None:
        transport.queue(lambda req: ok_response(req, [4, 2], signature="c2lnbmF0dXJl"))
        client = _client(transport, clock)

        result = await client.generate_signed_integers(2, 1, 6, user_data={"round": 1}, ticket_id="t-1")

        assert isinstance(result, SignedResult)
        assert result.data == [4, 2]
        assert result.random["data"] == [4, 2]
        assert result.signature == "c2lnbmF0dXJl"
        params = transport.requests[0]["params"]
        assert transport.requests[0]["method"] == "generateSignedIntegers"
        assert params["userData"] == {"round": 1}
        assert params["ticketId"] == "t-1"
        assert params["licenseData"] is None

    @pytest.mark.asyncio
    async def test_verify_signature_is_not_keyed(self, transport: FakeTransport, clock: FakeClock) -> None:
        transport.queue(lambda req: {"jsonrpc": "2.0", "result": {"authenticity": True}, "id": req["id"]})
        client = _client(transport, clock)

        assert await client.verify_signature({"data": [1]}, "sig") is True
        assert transport.requests[0]["params"] == {"random": {"data": [1]}, "signature": "sig"}

    @pytest.mark.asyncio
    async def test_get_result_by_serial_number(self, transport: FakeTransport, clock: FakeClock) -> None:
        transport.queue(
            lambda req: {
                "jsonrpc": "2.0",
                "result": {"random": {"data": [9], "serialNumber": 7}, "signature": "sig"},
                "id": req["id"],
            }
        )
        client = _client(transport, clock)

        result = await client.get_result(7)

        assert result.data == [9]
        assert transport.requests[0]["params"] == {"serialNumber": 7, "apiKey": "key-1"}


class TestTickets:
    @pytest.mark.asyncio
    async def test_ticket_methods(self, transport: FakeTransport, clock: FakeClock) -> None:
        transport.queue(
            lambda req: {"jsonrpc": "2.0", "result": [{"ticketId": "abc"}], "id": req["id"]},
            lambda req: {"jsonrpc": "2.0", "result": [], "id": req["id"]},
            lambda req: {"jsonrpc": "2.0", "result": {"ticketId": "abc"}, "id": req["id"]},
        )
        client = _client(transport, clock)

        assert await client.create_tickets(1, True) == [{"ticketId": "abc"}]
        assert await client.list_tickets("singleton") == []
        assert await client.get_ticket("abc") == {"ticketId": "abc"}

        assert transport.requests[0]["params"] == {"n": 1, "showResult": True, "apiKey": "key-1"}
        assert transport.requests[1]["params"] == {"ticketType": "singleton", "apiKey": "key-1"}
        assert transport.requests[2]["params"] == {"ticketId": "abc"}


class TestUsage:
    @pytest.mark.asyncio
    async def test_unknown_usage_is_fetched_then_reused(self, transport: FakeTransport, clock: FakeClock) -> None:
        transport.queue(
            lambda req: {
                "jsonrpc": "2.0",
                "result": {"status": "running", "bitsLeft": 1234, "requestsLeft": 56},
                "id": req["id"],
            }
        )
        client = _client(transport, clock)

        assert await client.get_bits_left() == 1234
        assert await client.get_requests_left() == 56
        assert [r["method"] for r in transport.requests] == ["getUsage"]

    @pytest.mark.asyncio
    async def test_usage_from_generate_call_is_reused(self, transport: FakeTransport, clock: FakeClock) -> None:
        transport.queue(lambda req: ok_response(req, [1], bits_left=777, requests_left=8))
        client = _client(transport, clock)

        await client.generate_integers(1, 1, 6)

        assert await client.get_bits_left() == 777
        assert len(transport.requests) == 1


class TestSharedState:
    def test_same_key_shares_one_dispatcher(self, transport: FakeTransport, clock: FakeClock) -> None:
        first = _client(transport, clock)
        second = RandomOrgClient("key-1", http_timeout_ms=1)

        assert first.dispatcher is second.dispatcher
        assert second.dispatcher.state.http_timeout_ms == settings.client.http_timeout_ms
        assert len(get_registry()) == 1

    def test_explicit_registry_is_used(self, transport: FakeTransport, clock: FakeClock) -> None:
        registry = DispatcherRegistry()

        client = _client(transport, clock, registry=registry)

        assert registry.get("key-1") is client.dispatcher
        assert get_registry().get("key-1") is None

    def test_unlimited_blocking_timeout(self, transport: FakeTransport, clock: FakeClock) -> None:
        client = _client(transport, clock, blocking_timeout_ms=-1)

        assert client.dispatcher.state.blocking_timeout_ms is None

    def test_missing_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.client, "api_key", None)

        with pytest.raises(InvalidRequestError, match="API key"):
            RandomOrgClient()

    def test_api_key_from_settings(self, transport: FakeTransport) -> None:
        client = RandomOrgClient(transport=transport)

        assert client.api_key == settings.client.api_key

    @pytest.mark.asyncio
    async def test_context_manager_closes_transport(self, transport: FakeTransport, clock: FakeClock) -> None:
        async with _client(transport, clock):
            pass

        assert transport.closed is True


class TestCaches:
    @pytest.mark.asyncio
    async def test_integer_cache_end_to_end(self, transport: FakeTransport, clock: FakeClock) -> None:
        gate = asyncio.Event()
        pacing_waits: list[float] = []

        async def _gated_sleep(seconds: float) -> None:
            pacing_waits.append(seconds)
            await gate.wait()

        client = RandomOrgClient("key-e2e", transport=transport, clock=clock, sleep=_gated_sleep)
        cache = client.create_integer_cache(5, 1, 10, cache_size=4)
        await _drain()

        # First call asks for 5 x 2; the second waits on the advisory delay
        assert cache.bulk_factor == 2
        assert [r["params"]["n"] for r in transport.requests] == [10]
        assert cache.cached_value_count == 2
        assert pacing_waits == [pytest.approx(1.0)]

        values = cache.get()
        assert len(values) == 5
        assert cache.cached_value_count == 1

        gate.set()
        await _drain()

        assert [r["params"]["n"] for r in transport.requests] == [10, 10]
        assert cache.cached_value_count == 3
        assert cache.requests_used == 2

    def test_no_bulk_without_replacement(self, transport: FakeTransport, clock: FakeClock) -> None:
        client = _client(transport, clock)

        cache = client.create_integer_cache(5, 1, 10, replacement=False, cache_size=6)

        assert cache.bulk_factor == 0
        assert cache.cache_size == 6

    def test_cache_size_floor_and_defaults(self, transport: FakeTransport, clock: FakeClock) -> None:
        client = _client(transport, clock)

        tiny = client.create_decimal_fraction_cache(2, 4, cache_size=1)
        uuids = client.create_uuid_cache(3)
        strings = client.create_string_cache(2, 8, "abcdef")

        assert tiny.cache_size == 2
        assert tiny.bulk_factor == 1
        assert uuids.cache_size == settings.client.default_small_cache_size
        assert uuids.unit_bits == 3 * 122
        assert strings.cache_size == settings.client.default_cache_size

    @pytest.mark.asyncio
    async def test_multiform_sequence_cache_tiles_lists(self, transport: FakeTransport, clock: FakeClock) -> None:
        client = _client(transport, clock)

        cache = client.create_integer_sequence_cache(2, [2, 3], 1, [6, 9], cache_size=4)
        await _drain()

        params = transport.requests[0]["params"]
        assert params["n"] == 4
        assert params["length"] == [2, 3, 2, 3]
        assert params["max"] == [6, 9, 6, 9]
        assert params["min"] == 1
        assert cache.request_count == 2

    @pytest.mark.asyncio
    async def test_gaussian_and_blob_caches_always_bulk(self, transport: FakeTransport, clock: FakeClock) -> None:
        client = _client(transport, clock)

        gaussians = client.create_gaussian_cache(4, 0.0, 1.0, 5, cache_size=6)
        blobs = client.create_blob_cache(2, 64, format="hex")
        gaussians.stop()
        blobs.stop()

        assert gaussians.bulk_factor == 3
        assert blobs.bulk_factor == 5
        assert blobs.unit_bits == 128
