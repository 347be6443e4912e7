"""HTTPS transport built on httpx."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from randomorg_client.adapters.transport.base import AbstractTransport
from randomorg_client.core.config import DEFAULT_ENDPOINT
from randomorg_client.core.errors import (
    BadHTTPResponseError,
    SendTimeoutError,
    TransportError,
)

logger = logging.getLogger(__name__)


class HttpxTransport(AbstractTransport):
    """POSTs JSON-RPC requests to the invoke endpoint with an async httpx client.

    The underlying client is created lazily so the transport can be built
    outside a running event loop.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers={"Content-Type": "application/json"})
        return self._client

    async def invoke(self, request: dict[str, Any], *, timeout_s: float) -> dict[str, Any]:
        try:
            resp = await self.client.post(self.endpoint, json=request, timeout=timeout_s)
        except httpx.TimeoutException as exc:
            raise SendTimeoutError(
                code="http_timeout",
                message=(
                    f"The maximum allowed blocking time of {timeout_s * 1000:.0f}ms has "
                    "been exceeded while waiting for the server to respond."
                ),
                details={"method": request.get("method", "")},
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                code="http_error",
                message=f"HTTP transport error: {exc}",
                details={"method": request.get("method", "")},
            ) from exc

        if not 200 <= resp.status_code < 300:
            logger.warning(
                "transport.bad_status",
                extra={"status": resp.status_code, "method": request.get("method")},
            )
            raise BadHTTPResponseError(
                code="bad_http_response",
                message=f"Error: {resp.status_code}",
                details={"http_status": resp.status_code},
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise TransportError(
                code="invalid_response_body",
                message=f"Server response is not valid JSON: {exc}",
            ) from exc

        if not isinstance(body, dict):
            raise TransportError(
                code="invalid_response_body",
                message="Server response is not a JSON object",
            )
        return body

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
