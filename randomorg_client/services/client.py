"""RANDOM.ORG JSON-RPC client facade.

Builds validated requests for each primitive, sends them through the shared
dispatcher for the API key and unwraps the results. Caches created here share
that dispatcher too, so all traffic for one key is paced together.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import ValidationError

from randomorg_client.adapters.transport.base import AbstractTransport
from randomorg_client.adapters.transport.httpx_transport import HttpxTransport
from randomorg_client.core.config import settings
from randomorg_client.core.errors import InvalidRequestError
from randomorg_client.core.logging import hash_api_key
from randomorg_client.schemas.requests import (
    BLOB_FORMAT_BASE64,
    CREATE_TICKETS_METHOD,
    GET_RESULT_METHOD,
    GET_TICKET_METHOD,
    LIST_TICKETS_METHOD,
    VERIFY_SIGNATURE_METHOD,
    BlobOptions,
    DecimalFractionOptions,
    GaussianOptions,
    IntegerOptions,
    IntegerSequenceOptions,
    RequestOptions,
    SignedOptions,
    StringOptions,
    UUIDOptions,
    build_request,
)
from randomorg_client.services.cache import ReplenishingCache
from randomorg_client.services.dispatcher import ClientState, RequestDispatcher
from randomorg_client.services.registry import DispatcherRegistry, get_registry
from randomorg_client.utils.signature_links import create_html, create_url

logger = logging.getLogger(__name__)

OptionsT = TypeVar("OptionsT", bound=RequestOptions)


@dataclass(frozen=True)
class SignedResult:
    """Values from a signed method together with what is needed to verify them."""

    data: list[Any]
    random: dict[str, Any]
    signature: str


def _build_options(model: type[OptionsT], **values: Any) -> OptionsT:
    try:
        return model(**values)
    except ValidationError as exc:
        raise InvalidRequestError(
            code="invalid_request_options",
            message=f"Invalid {model.__name__}: {exc.errors(include_url=False)}",
        ) from exc


def _signed_options(license_data: Any, user_data: Any, ticket_id: str | None) -> SignedOptions:
    try:
        return SignedOptions(license_data=license_data, user_data=user_data, ticket_id=ticket_id)
    except ValidationError as exc:
        raise InvalidRequestError(
            code="invalid_request_options",
            message=f"Invalid SignedOptions: {exc.errors(include_url=False)}",
        ) from exc


def _to_signed_result(response: dict[str, Any]) -> SignedResult:
    result = response["result"]
    return SignedResult(
        data=result["random"]["data"],
        random=result["random"],
        signature=result["signature"],
    )


class RandomOrgClient:
    """Async client for the RANDOM.ORG JSON-RPC API (release 4).

    Instances built for the same API key share one RequestDispatcher via the
    registry; pacing and timeout options only take effect for the first
    instance created for a key.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        blocking_timeout_ms: int | None = None,
        http_timeout_ms: int | None = None,
        transport: AbstractTransport | None = None,
        registry: DispatcherRegistry | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the client, reusing the dispatcher already registered for the key.

        Args:
            api_key: RANDOM.ORG API key; falls back to RANDOM_ORG_API_KEY.
            blocking_timeout_ms: Longest pacing wait before giving up (-1 = forever).
            http_timeout_ms: Longest wait for the server's answer.
            transport: Invoker for the network call; defaults to HttpxTransport.
            registry: Dispatcher registry; defaults to the process-wide one.
            clock: Time source returning UNIX time in seconds.
            sleep: Coroutine function used for pacing and cache polling.

        Raises:
            InvalidRequestError: If no API key is configured.
        """
        cfg = settings.client
        api_key = api_key or cfg.api_key
        if not api_key:
            raise InvalidRequestError(
                code="missing_api_key",
                message="An API key is required (argument or RANDOM_ORG_API_KEY environment variable)",
            )

        blocking = cfg.blocking_timeout_ms if blocking_timeout_ms is None else blocking_timeout_ms
        http_timeout = cfg.http_timeout_ms if http_timeout_ms is None else http_timeout_ms

        def _factory() -> RequestDispatcher:
            state = ClientState(
                api_key=api_key,
                blocking_timeout_ms=None if blocking == -1 else blocking,
                http_timeout_ms=http_timeout,
            )
            return RequestDispatcher(
                state,
                transport or HttpxTransport(cfg.endpoint),
                clock=clock,
                sleep=sleep,
            )

        self.api_key = api_key
        self._sleep = sleep
        self.dispatcher = (registry or get_registry()).get_or_create(api_key, _factory)
        logger.debug("client.initialized", extra={"key_hash": hash_api_key(api_key)})

    async def __aenter__(self) -> "RandomOrgClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the transport shared by every client on this key."""
        await self.dispatcher.transport.aclose()

    # Basic API

    async def generate_integers(
        self,
        n: int,
        min: int,
        max: int,
        *,
        replacement: bool = True,
        base: int = 10,
        pregenerated_randomization: dict[str, str] | None = None,
    ) -> list[Any]:
        """Return n true random integers in [min, max] (strings when base != 10)."""
        options = _build_options(
            IntegerOptions,
            n=n,
            min=min,
            max=max,
            replacement=replacement,
            base=base,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._basic(options)

    async def generate_integer_sequences(
        self,
        n: int,
        length: int | list[int],
        min: int | list[int],
        max: int | list[int],
        *,
        replacement: bool | list[bool] = True,
        base: int | list[int] = 10,
        pregenerated_randomization: dict[str, str] | None = None,
    ) -> list[list[Any]]:
        """Return n sequences of random integers; list arguments make them multiform."""
        options = _build_options(
            IntegerSequenceOptions,
            n=n,
            length=length,
            min=min,
            max=max,
            replacement=replacement,
            base=base,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._basic(options)

    async def generate_decimal_fractions(
        self,
        n: int,
        decimal_places: int,
        *,
        replacement: bool = True,
        pregenerated_randomization: dict[str, str] | None = None,
    ) -> list[float]:
        options = _build_options(
            DecimalFractionOptions,
            n=n,
            decimal_places=decimal_places,
            replacement=replacement,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._basic(options)

    async def generate_gaussians(
        self,
        n: int,
        mean: float,
        standard_deviation: float,
        significant_digits: int,
        *,
        pregenerated_randomization: dict[str, str] | None = None,
    ) -> list[float]:
        options = _build_options(
            GaussianOptions,
            n=n,
            mean=mean,
            standard_deviation=standard_deviation,
            significant_digits=significant_digits,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._basic(options)

    async def generate_strings(
        self,
        n: int,
        length: int,
        characters: str,
        *,
        replacement: bool = True,
        pregenerated_randomization: dict[str, str] | None = None,
    ) -> list[str]:
        options = _build_options(
            StringOptions,
            n=n,
            length=length,
            characters=characters,
            replacement=replacement,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._basic(options)

    async def generate_uuids(
        self,
        n: int,
        *,
        pregenerated_randomization: dict[str, str] | None = None,
    ) -> list[str]:
        options = _build_options(UUIDOptions, n=n, pregenerated_randomization=pregenerated_randomization)
        return await self._basic(options)

    async def generate_blobs(
        self,
        n: int,
        size: int,
        *,
        format: str = BLOB_FORMAT_BASE64,
        pregenerated_randomization: dict[str, str] | None = None,
    ) -> list[str]:
        """Return n random blobs of `size` bits, encoded as base64 or hex."""
        options = _build_options(
            BlobOptions,
            n=n,
            size=size,
            format=format,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._basic(options)

    # Signed API

    async def generate_signed_integers(
        self,
        n: int,
        min: int,
        max: int,
        *,
        replacement: bool = True,
        base: int = 10,
        pregenerated_randomization: dict[str, str] | None = None,
        license_data: dict[str, Any] | None = None,
        user_data: Any = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        options = _build_options(
            IntegerOptions,
            n=n,
            min=min,
            max=max,
            replacement=replacement,
            base=base,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._signed(options, _signed_options(license_data, user_data, ticket_id))

    async def generate_signed_integer_sequences(
        self,
        n: int,
        length: int | list[int],
        min: int | list[int],
        max: int | list[int],
        *,
        replacement: bool | list[bool] = True,
        base: int | list[int] = 10,
        pregenerated_randomization: dict[str, str] | None = None,
        license_data: dict[str, Any] | None = None,
        user_data: Any = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        options = _build_options(
            IntegerSequenceOptions,
            n=n,
            length=length,
            min=min,
            max=max,
            replacement=replacement,
            base=base,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._signed(options, _signed_options(license_data, user_data, ticket_id))

    async def generate_signed_decimal_fractions(
        self,
        n: int,
        decimal_places: int,
        *,
        replacement: bool = True,
        pregenerated_randomization: dict[str, str] | None = None,
        license_data: dict[str, Any] | None = None,
        user_data: Any = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        options = _build_options(
            DecimalFractionOptions,
            n=n,
            decimal_places=decimal_places,
            replacement=replacement,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._signed(options, _signed_options(license_data, user_data, ticket_id))

    async def generate_signed_gaussians(
        self,
        n: int,
        mean: float,
        standard_deviation: float,
        significant_digits: int,
        *,
        pregenerated_randomization: dict[str, str] | None = None,
        license_data: dict[str, Any] | None = None,
        user_data: Any = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        options = _build_options(
            GaussianOptions,
            n=n,
            mean=mean,
            standard_deviation=standard_deviation,
            significant_digits=significant_digits,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._signed(options, _signed_options(license_data, user_data, ticket_id))

    async def generate_signed_strings(
        self,
        n: int,
        length: int,
        characters: str,
        *,
        replacement: bool = True,
        pregenerated_randomization: dict[str, str] | None = None,
        license_data: dict[str, Any] | None = None,
        user_data: Any = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        options = _build_options(
            StringOptions,
            n=n,
            length=length,
            characters=characters,
            replacement=replacement,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._signed(options, _signed_options(license_data, user_data, ticket_id))

    async def generate_signed_uuids(
        self,
        n: int,
        *,
        pregenerated_randomization: dict[str, str] | None = None,
        license_data: dict[str, Any] | None = None,
        user_data: Any = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        options = _build_options(UUIDOptions, n=n, pregenerated_randomization=pregenerated_randomization)
        return await self._signed(options, _signed_options(license_data, user_data, ticket_id))

    async def generate_signed_blobs(
        self,
        n: int,
        size: int,
        *,
        format: str = BLOB_FORMAT_BASE64,
        pregenerated_randomization: dict[str, str] | None = None,
        license_data: dict[str, Any] | None = None,
        user_data: Any = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        options = _build_options(
            BlobOptions,
            n=n,
            size=size,
            format=format,
            pregenerated_randomization=pregenerated_randomization,
        )
        return await self._signed(options, _signed_options(license_data, user_data, ticket_id))

    async def get_result(self, serial_number: int) -> SignedResult:
        """Retrieve a signed response generated within the last 24h by serial number."""
        request = build_request(GET_RESULT_METHOD, {"serialNumber": serial_number}, api_key=self.api_key)
        return _to_signed_result(await self.dispatcher.dispatch(request))

    async def verify_signature(self, random: dict[str, Any], signature: str) -> bool:
        """Ask the server whether `signature` authenticates `random`."""
        request = build_request(VERIFY_SIGNATURE_METHOD, {"random": random, "signature": signature})
        response = await self.dispatcher.dispatch(request)
        return bool(response["result"]["authenticity"])

    # Tickets

    async def create_tickets(self, n: int, show_result: bool) -> list[dict[str, Any]]:
        request = build_request(
            CREATE_TICKETS_METHOD,
            {"n": n, "showResult": show_result},
            api_key=self.api_key,
        )
        return (await self.dispatcher.dispatch(request))["result"]

    async def list_tickets(self, ticket_type: str) -> list[dict[str, Any]]:
        """List tickets of one type: "singleton", "head" or "tail"."""
        request = build_request(LIST_TICKETS_METHOD, {"ticketType": ticket_type}, api_key=self.api_key)
        return (await self.dispatcher.dispatch(request))["result"]

    async def get_ticket(self, ticket_id: str) -> dict[str, Any]:
        request = build_request(GET_TICKET_METHOD, {"ticketId": ticket_id})
        return (await self.dispatcher.dispatch(request))["result"]

    # Usage

    async def get_bits_left(self) -> int | None:
        """Estimated bits remaining; refreshed from the server when older than an hour."""
        if self.dispatcher.usage_is_stale():
            await self.dispatcher.refresh_usage()
        return self.dispatcher.state.bits_left

    async def get_requests_left(self) -> int | None:
        """Estimated requests remaining; refreshed from the server when older than an hour."""
        if self.dispatcher.usage_is_stale():
            await self.dispatcher.refresh_usage()
        return self.dispatcher.state.requests_left

    # Verification links

    def create_url(self, random: dict[str, Any], signature: str) -> str:
        return create_url(random, signature)

    def create_html(self, random: dict[str, Any], signature: str) -> str:
        return create_html(random, signature)

    # Caches

    def create_integer_cache(
        self,
        n: int,
        min: int,
        max: int,
        *,
        replacement: bool = True,
        base: int = 10,
        cache_size: int | None = None,
    ) -> ReplenishingCache:
        options = _build_options(IntegerOptions, n=n, min=min, max=max, replacement=replacement, base=base)
        return self._create_cache(options, cache_size or settings.client.default_cache_size)

    def create_integer_sequence_cache(
        self,
        n: int,
        length: int | list[int],
        min: int | list[int],
        max: int | list[int],
        *,
        replacement: bool | list[bool] = True,
        base: int | list[int] = 10,
        cache_size: int | None = None,
    ) -> ReplenishingCache:
        options = _build_options(
            IntegerSequenceOptions,
            n=n,
            length=length,
            min=min,
            max=max,
            replacement=replacement,
            base=base,
        )
        return self._create_cache(options, cache_size or settings.client.default_cache_size)

    def create_decimal_fraction_cache(
        self,
        n: int,
        decimal_places: int,
        *,
        replacement: bool = True,
        cache_size: int | None = None,
    ) -> ReplenishingCache:
        options = _build_options(
            DecimalFractionOptions,
            n=n,
            decimal_places=decimal_places,
            replacement=replacement,
        )
        return self._create_cache(options, cache_size or settings.client.default_cache_size)

    def create_gaussian_cache(
        self,
        n: int,
        mean: float,
        standard_deviation: float,
        significant_digits: int,
        *,
        cache_size: int | None = None,
    ) -> ReplenishingCache:
        options = _build_options(
            GaussianOptions,
            n=n,
            mean=mean,
            standard_deviation=standard_deviation,
            significant_digits=significant_digits,
        )
        return self._create_cache(options, cache_size or settings.client.default_cache_size)

    def create_string_cache(
        self,
        n: int,
        length: int,
        characters: str,
        *,
        replacement: bool = True,
        cache_size: int | None = None,
    ) -> ReplenishingCache:
        options = _build_options(
            StringOptions,
            n=n,
            length=length,
            characters=characters,
            replacement=replacement,
        )
        return self._create_cache(options, cache_size or settings.client.default_cache_size)

    def create_uuid_cache(self, n: int, *, cache_size: int | None = None) -> ReplenishingCache:
        options = _build_options(UUIDOptions, n=n)
        return self._create_cache(options, cache_size or settings.client.default_small_cache_size)

    def create_blob_cache(
        self,
        n: int,
        size: int,
        *,
        format: str = BLOB_FORMAT_BASE64,
        cache_size: int | None = None,
    ) -> ReplenishingCache:
        options = _build_options(BlobOptions, n=n, size=size, format=format)
        return self._create_cache(options, cache_size or settings.client.default_small_cache_size)

    async def _basic(self, options: RequestOptions) -> list[Any]:
        response = await self.dispatcher.dispatch(options.build(self.api_key))
        return response["result"]["random"]["data"]

    async def _signed(self, options: RequestOptions, signed: SignedOptions) -> SignedResult:
        response = await self.dispatcher.dispatch(options.build(self.api_key, signed=signed))
        return _to_signed_result(response)

    def _create_cache(self, options: RequestOptions, cache_size: int) -> ReplenishingCache:
        cache_size = max(2, cache_size)

        # Bulk-order cache_size/2 result sets per call when results are
        # independent; the cache shrinks the batch if bits run short.
        bulk_factor = cache_size // 2 if options.supports_bulk() else 0
        template = options.scaled(bulk_factor) if bulk_factor else options

        return ReplenishingCache(
            self.dispatcher.dispatch,
            template.build(self.api_key),
            cache_size,
            bulk_factor,
            options.n,
            options.unit_bits(),
            poll_interval_s=settings.client.cache_poll_interval_ms / 1000,
            sleep=self._sleep,
        )
