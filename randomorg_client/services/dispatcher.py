"""Rate-limited JSON-RPC request dispatcher.

One dispatcher exists per API key (see services.registry). Every call made on
that key, directly or from a cache, goes through dispatch(), which:
- short-circuits while a daily-quota back-off is in effect
- obeys the server's advisory delay between requests
- invokes the transport under the HTTP timeout
- classifies JSON-RPC error objects into typed exceptions
- records the usage counters and pacing hint returned by the server

Calls are ordered through the shared ClientState rather than a lock. Each step
reads and writes the state without awaiting in between, which is enough under
asyncio's cooperative scheduling.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, time as dt_time, timedelta, timezone
from typing import Any, Awaitable, Callable

from randomorg_client.adapters.transport.base import AbstractTransport
from randomorg_client.core.errors import (
    InsufficientBitsError,
    InsufficientRequestsError,
    JsonRpcError,
    KeyNotRunningError,
    RandomOrgError,
    SendTimeoutError,
    ServerError,
)
from randomorg_client.core.logging import hash_api_key, reset_request_id, set_request_id
from randomorg_client.schemas.requests import GET_USAGE_METHOD, build_request

logger = logging.getLogger(__name__)

# Pacing used when the server supplies no advisoryDelay (milliseconds)
DEFAULT_DELAY_MS = 1000

# Cached usage counters older than this are refreshed on read (milliseconds)
ALLOWANCE_STATE_REFRESH_MS = 3600 * 1000

# https://api.random.org/json-rpc/4/error-codes
SERVER_ERROR_CODES = frozenset(
    {
        100, 101, 200, 201, 202, 203, 204, 300, 301, 302, 303, 304, 305, 306,
        307, 400, 401, 402, 403, 404, 405, 420, 421, 422, 423, 424, 425, 500,
        32000,
    }
)

KEY_NOT_RUNNING_CODE = 401
INSUFFICIENT_REQUESTS_CODE = 402
INSUFFICIENT_BITS_CODE = 403

# Methods whose responses carry no requestsLeft/bitsLeft/advisoryDelay
QUOTA_INDEPENDENT_METHODS = frozenset(
    {
        "verifySignature",
        "getResult",
        "createTickets",
        "listTickets",
        "getTicket",
    }
)

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class ClientState:
    """Shared per-API-key state observed and mutated by every dispatch.

    Attributes:
        api_key: Credential this state belongs to.
        blocking_timeout_ms: Longest acceptable pacing wait; None waits forever.
        http_timeout_ms: Longest acceptable wait for the server's answer.
        advisory_delay_ms: Minimum gap the server asked for between requests.
        last_response_at: Epoch seconds of the last response (0 before any).
        backoff_until: Epoch seconds before which no request is sent, or None.
        backoff_message: Message of the error that installed the back-off.
        bits_left: Server-reported bits remaining, None until known.
        requests_left: Server-reported requests remaining, None until known.
    """

    api_key: str
    blocking_timeout_ms: int | None = 24 * 60 * 60 * 1000
    http_timeout_ms: int = 120 * 1000
    advisory_delay_ms: int = DEFAULT_DELAY_MS
    last_response_at: float = 0.0
    backoff_until: float | None = None
    backoff_message: str = ""
    bits_left: int | None = None
    requests_left: int | None = None


def next_utc_midnight(now: float) -> float:
    """Return the epoch seconds of the start of the next UTC day after `now`."""
    today = datetime.fromtimestamp(now, tz=timezone.utc).date()
    midnight = datetime.combine(today + timedelta(days=1), dt_time.min, tzinfo=timezone.utc)
    return midnight.timestamp()


def _data_item(data: Any, index: int) -> Any:
    if isinstance(data, (list, tuple)) and len(data) > index:
        return data[index]
    return None


class RequestDispatcher:
    """Serializes, paces and classifies requests for one API key."""

    def __init__(
        self,
        state: ClientState,
        transport: AbstractTransport,
        *,
        clock: Callable[[], float] = time.time,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            state: Shared state for the API key.
            transport: Invoker that performs the network call.
            clock: Time source returning UNIX time in seconds.
            sleep: Coroutine function used for the pacing delay.
        """
        self.state = state
        self.transport = transport
        self._clock = clock
        self._sleep = sleep
        self._key_hash = hash_api_key(state.api_key)

    def compute_wait_ms(self) -> float:
        """Milliseconds still to wait before the server's advisory delay has elapsed."""
        elapsed_ms = (self._clock() - self.state.last_response_at) * 1000
        return self.state.advisory_delay_ms - elapsed_ms

    def usage_is_stale(self) -> bool:
        """True when usage counters are unknown or older than the refresh interval."""
        if self.state.bits_left is None or self.state.requests_left is None:
            return True
        age_ms = (self._clock() - self.state.last_response_at) * 1000
        return age_ms > ALLOWANCE_STATE_REFRESH_MS

    async def refresh_usage(self) -> dict[str, Any]:
        """Fetch fresh usage counters with getUsage and return the result object."""
        request = build_request(GET_USAGE_METHOD, {}, api_key=self.state.api_key)
        response = await self.dispatch(request)
        return response["result"]

    async def dispatch(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send one request, honouring back-off and pacing, and return the response.

        Args:
            request: Fully formed JSON-RPC request object.

        Returns:
            dict[str, Any]: The full JSON-RPC response (with "result").

        Raises:
            InsufficientRequestsError: Back-off active or daily requests exhausted.
            SendTimeoutError: Pacing wait exceeds the blocking timeout, or no
                answer within the HTTP timeout.
            BadHTTPResponseError: Non-2xx HTTP status.
            KeyNotRunningError: The API key is stopped.
            InsufficientBitsError: Not enough bits left for this request.
            ServerError: Any other published RANDOM.ORG error code.
            JsonRpcError: Any other error object.
        """
        method = str(request.get("method", ""))
        self._check_backoff(method)

        wait_ms = self.compute_wait_ms()
        blocking_timeout = self.state.blocking_timeout_ms
        if blocking_timeout is not None and wait_ms > blocking_timeout:
            raise SendTimeoutError(
                code="blocking_timeout_exceeded",
                message=(
                    f"The server advisory delay of {wait_ms:.0f}ms is greater than the "
                    f"defined maximum allowed blocking time of {blocking_timeout}ms."
                ),
                details={"method": method},
            )
        if wait_ms > 0:
            logger.debug(
                "dispatch.pacing",
                extra={"key_hash": self._key_hash, "method": method, "wait_ms": round(wait_ms)},
            )
            await self._sleep(wait_ms / 1000)

        token = set_request_id(str(request.get("id", "")) or None)
        try:
            response = await self._invoke(request, method)
            self.state.last_response_at = self._clock()

            error = response.get("error")
            if error is not None:
                raise self._classify_error(error, method)
            if "result" not in response:
                raise JsonRpcError(
                    code="malformed_response",
                    message="Response carries neither result nor error",
                    details={"method": method},
                )

            self._record_usage(method, response["result"])
            logger.debug(
                "dispatch.completed",
                extra={
                    "key_hash": self._key_hash,
                    "method": method,
                    "bits_left": self.state.bits_left,
                    "requests_left": self.state.requests_left,
                    "advisory_delay_ms": self.state.advisory_delay_ms,
                },
            )
            return response
        finally:
            reset_request_id(token)

    def _check_backoff(self, method: str) -> None:
        backoff_until = self.state.backoff_until
        if backoff_until is None:
            return
        if self._clock() < backoff_until:
            logger.info(
                "dispatch.backoff_active",
                extra={"key_hash": self._key_hash, "method": method, "backoff_until": backoff_until},
            )
            raise InsufficientRequestsError(
                code="insufficient_requests",
                message=self.state.backoff_message,
                details={"method": method},
                requests_left=self.state.requests_left,
                backoff_until=backoff_until,
            )
        logger.info("dispatch.backoff_cleared", extra={"key_hash": self._key_hash})
        self.state.backoff_until = None
        self.state.backoff_message = ""

    async def _invoke(self, request: dict[str, Any], method: str) -> dict[str, Any]:
        timeout_s = self.state.http_timeout_ms / 1000
        logger.debug("dispatch.sent", extra={"key_hash": self._key_hash, "method": method})
        try:
            return await asyncio.wait_for(
                self.transport.invoke(request, timeout_s=timeout_s),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise SendTimeoutError(
                code="http_timeout",
                message=(
                    f"The maximum allowed blocking time of {self.state.http_timeout_ms}ms "
                    "has been exceeded while waiting for the server to respond."
                ),
                details={"method": method},
            ) from exc

    def _classify_error(self, error: Any, method: str) -> RandomOrgError:
        if not isinstance(error, dict):
            return JsonRpcError(
                code="jsonrpc_error",
                message=f"Malformed error object: {error!r}",
                details={"method": method},
            )

        rpc_code = error.get("code")
        message = f"Error {rpc_code}: {error.get('message', '')}"
        data = error.get("data")
        details = {"rpc_code": rpc_code, "method": method, "data": data}

        logger.warning(
            "dispatch.server_error",
            extra={"key_hash": self._key_hash, "method": method, "rpc_code": rpc_code},
        )

        if rpc_code == KEY_NOT_RUNNING_CODE:
            return KeyNotRunningError(code="key_not_running", message=message, details=details)

        if rpc_code == INSUFFICIENT_REQUESTS_CODE:
            self.state.backoff_until = next_utc_midnight(self._clock())
            self.state.backoff_message = message
            self.state.requests_left = _data_item(data, 1)
            logger.warning(
                "dispatch.backoff_installed",
                extra={"key_hash": self._key_hash, "backoff_until": self.state.backoff_until},
            )
            return InsufficientRequestsError(
                code="insufficient_requests",
                message=message,
                details=details,
                requests_left=self.state.requests_left,
                backoff_until=self.state.backoff_until,
            )

        if rpc_code == INSUFFICIENT_BITS_CODE:
            bits_left = _data_item(data, 1)
            self.state.bits_left = bits_left
            return InsufficientBitsError(
                code="insufficient_bits",
                message=message,
                details=details,
                bits_left=bits_left if isinstance(bits_left, int) else -1,
            )

        if isinstance(rpc_code, int) and rpc_code in SERVER_ERROR_CODES:
            return ServerError(code="server_error", message=message, details=details, rpc_code=rpc_code)

        return JsonRpcError(
            code="jsonrpc_error",
            message=message,
            details=details,
            rpc_code=rpc_code if isinstance(rpc_code, int) else -1,
        )

    def _record_usage(self, method: str, result: dict[str, Any]) -> None:
        if method in QUOTA_INDEPENDENT_METHODS:
            self.state.advisory_delay_ms = DEFAULT_DELAY_MS
            return
        self.state.requests_left = result.get("requestsLeft")
        self.state.bits_left = result.get("bitsLeft")
        self.state.advisory_delay_ms = result.get("advisoryDelay") or DEFAULT_DELAY_MS
