"""Transport interface.

The dispatcher depends on this abstraction (not the concrete HTTP client) so
tests and alternative runtimes can inject their own invoker.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class AbstractTransport(ABC):
    """Interface for objects that deliver one JSON-RPC request and return the parsed response."""

    @abstractmethod
    async def invoke(self, request: dict[str, Any], *, timeout_s: float) -> dict[str, Any]:
        """Send a JSON-RPC request and return the decoded response body.

        Args:
            request: Fully formed JSON-RPC 2.0 request object.
            timeout_s: Maximum time to wait for the server to respond.

        Returns:
            dict[str, Any]: Parsed JSON-RPC response (may contain "error").

        Raises:
            SendTimeoutError: If the server does not respond in time.
            BadHTTPResponseError: If the HTTP status is not 2xx.
            TransportError: For any other connection or decoding failure.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release any held connections."""
        return None
