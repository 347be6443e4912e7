"""Transport adapter layer - abstracts over how JSON-RPC calls reach the server."""

from randomorg_client.adapters.transport.base import AbstractTransport
from randomorg_client.adapters.transport.httpx_transport import HttpxTransport

__all__ = [
    "AbstractTransport",
    "HttpxTransport",
]
