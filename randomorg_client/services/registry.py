"""Process-wide registry of dispatchers, one per API key.

Every client and cache built for the same key must observe the same pacing,
back-off and usage state, so dispatchers are looked up here rather than
constructed directly. Tests call reset_registry() for isolation.
"""

from __future__ import annotations

import logging
from typing import Callable

from randomorg_client.core.logging import hash_api_key
from randomorg_client.services.dispatcher import RequestDispatcher

logger = logging.getLogger(__name__)


class DispatcherRegistry:
    """Maps API keys to their shared RequestDispatcher."""

    def __init__(self) -> None:
        self._dispatchers: dict[str, RequestDispatcher] = {}

    def __len__(self) -> int:
        return len(self._dispatchers)

    def get(self, api_key: str) -> RequestDispatcher | None:
        return self._dispatchers.get(api_key)

    def get_or_create(
        self,
        api_key: str,
        factory: Callable[[], RequestDispatcher],
    ) -> RequestDispatcher:
        """Return the dispatcher for api_key, building it with factory on first use.

        Raises:
            ValueError: If api_key is empty.
        """
        if not api_key:
            raise ValueError("api_key must be a non-empty string")

        dispatcher = self._dispatchers.get(api_key)
        if dispatcher is None:
            dispatcher = factory()
            self._dispatchers[api_key] = dispatcher
            logger.debug("registry.dispatcher_created", extra={"key_hash": hash_api_key(api_key)})
        return dispatcher

    def reset(self) -> None:
        """Forget all dispatchers (their transports are not closed)."""
        self._dispatchers.clear()


_registry: DispatcherRegistry | None = None


def get_registry() -> DispatcherRegistry:
    """Return the process-wide registry, creating it on first use."""

    global _registry

    if _registry is None:
        _registry = DispatcherRegistry()
    return _registry


def reset_registry() -> None:
    """Drop every registered dispatcher; intended for test isolation."""
    get_registry().reset()
