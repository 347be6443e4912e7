"""Async client for the RANDOM.ORG JSON-RPC API with self-replenishing caches."""

from randomorg_client.core.errors import (
    BadHTTPResponseError,
    CacheEmptyError,
    InsufficientBitsError,
    InsufficientRequestsError,
    InvalidRequestError,
    JsonRpcError,
    KeyNotRunningError,
    RandomOrgError,
    SendTimeoutError,
    ServerError,
    TransportError,
)
from randomorg_client.services.cache import ReplenishingCache
from randomorg_client.services.client import RandomOrgClient, SignedResult
from randomorg_client.services.dispatcher import ClientState, RequestDispatcher
from randomorg_client.services.registry import DispatcherRegistry, get_registry, reset_registry

__all__ = [
    "BadHTTPResponseError",
    "CacheEmptyError",
    "ClientState",
    "DispatcherRegistry",
    "InsufficientBitsError",
    "InsufficientRequestsError",
    "InvalidRequestError",
    "JsonRpcError",
    "KeyNotRunningError",
    "RandomOrgClient",
    "RandomOrgError",
    "ReplenishingCache",
    "RequestDispatcher",
    "SendTimeoutError",
    "ServerError",
    "SignedResult",
    "TransportError",
    "get_registry",
    "reset_registry",
]
