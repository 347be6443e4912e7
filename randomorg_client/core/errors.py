"""Client-level exception types.

Every failure raised by the dispatcher, the transport and the caches derives
from RandomOrgError so callers can catch the whole family at once, while the
concrete classes carry the structured data needed to react (bits left,
back-off deadline, paused state).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability."""

    rpc_code: int
    http_status: int
    method: str
    request_id: str
    data: Any
    context: NotRequired[dict[str, Any]]


@dataclass
class RandomOrgError(Exception):
    """Base error for client failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class InvalidRequestError(RandomOrgError):
    """Raised when a request cannot be built from the supplied options."""


class TransportError(RandomOrgError):
    """Raised when the HTTP exchange itself fails."""


@dataclass
class BadHTTPResponseError(TransportError):
    """The server answered with a non-2xx HTTP status."""

    status_code: int = -1


class SendTimeoutError(TransportError):
    """Blocking timeout exceeded before sending, or the server did not answer in time."""


@dataclass
class JsonRpcError(RandomOrgError):
    """The server returned a standard JSON-RPC error."""

    rpc_code: int = -1


@dataclass
class ServerError(RandomOrgError):
    """The server returned one of the published RANDOM.ORG error codes."""

    rpc_code: int = -1


class KeyNotRunningError(RandomOrgError):
    """The API key has been stopped; requests will not complete."""


@dataclass
class InsufficientRequestsError(RandomOrgError):
    """Daily request allowance exhausted; a back-off until UTC midnight is in effect."""

    requests_left: int | None = None
    backoff_until: float | None = None


@dataclass
class InsufficientBitsError(RandomOrgError):
    """Bits allowance too low for this request; smaller requests may still succeed."""

    bits_left: int = -1


@dataclass
class CacheEmptyError(RandomOrgError):
    """No result set is ready in the cache."""

    paused: bool = False
