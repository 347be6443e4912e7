"""Self-replenishing cache of pre-fetched result sets.

A cache holds up to `cache_size` result sets (one answer to the configured
request shape each) and refills itself in the background after every get().
In bulk mode several result sets are requested in one call and split apart;
when the server reports that too few bits remain, the next call is shrunk to
the largest batch that still fits.

Population runs as asyncio tasks. The `_populating` flag is set before the
first await, which under a cooperative scheduler is enough to keep two loops
from running on the same cache. A threaded port would need a real lock.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Awaitable, Callable, Coroutine

from randomorg_client.core.errors import CacheEmptyError, InsufficientBitsError, JsonRpcError

logger = logging.getLogger(__name__)

DispatchFn = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

DEFAULT_POLL_INTERVAL_S = 0.05


class ReplenishingCache:
    """Bounded stack of ready result sets, refilled from a dispatch function.

    Attributes:
        cache_size: Number of result sets the cache tries to keep ready.
        bulk_factor: Result sets packed into one call (0 disables bulk mode).
        request_count: Results in a single result set.
        unit_bits: Estimated bit cost of one result set.
    """

    def __init__(
        self,
        dispatch: DispatchFn,
        request: dict[str, Any],
        cache_size: int,
        bulk_factor: int,
        request_count: int,
        unit_bits: int,
        *,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the cache and start populating it when a loop is running.

        Args:
            dispatch: Coroutine function sending a request and returning the response.
            request: Request template; in bulk mode its "n" must already be
                bulk_factor * request_count.
            cache_size: Result sets to maintain (at least 2).
            bulk_factor: Result sets per bulk call, or 0 for one per call.
            request_count: Results per result set.
            unit_bits: Bit cost of one result set, for shrinking bulk calls.
            poll_interval_s: Delay between retries in get_or_wait().
            sleep: Coroutine function used for that delay.

        Raises:
            ValueError: If the sizing arguments are inconsistent.
        """
        if cache_size < 2:
            raise ValueError("cache_size must be >= 2")
        if bulk_factor < 0 or bulk_factor > cache_size:
            raise ValueError("bulk_factor must be within [0, cache_size]")
        if request_count < 1:
            raise ValueError("request_count must be >= 1")
        if unit_bits < 1:
            raise ValueError("unit_bits must be >= 1")

        self._dispatch = dispatch
        self._request = request
        self.cache_size = cache_size
        self.bulk_factor = bulk_factor
        self.request_count = request_count
        self.unit_bits = unit_bits
        self._poll_interval_s = poll_interval_s
        self._sleep = sleep

        # Bulk template parameters, restored after a shrunk request
        self._bulk_params = copy.deepcopy(request["params"])

        self._stack: list[Any] = []
        self._paused = False
        self._bits_used = 0
        self._requests_used = 0
        self._error: Exception | None = None
        self._populating = False
        self._tasks: set[asyncio.Task[None]] = set()

        self._refresh()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"ReplenishingCache(method={self._request.get('method')!r}, "
            f"cache_size={self.cache_size}, bulk_factor={self.bulk_factor}, "
            f"cached={len(self._stack)}, paused={self._paused})"
        )

    @property
    def cached_value_count(self) -> int:
        """Number of result sets ready, i.e. how often get() succeeds without a refill."""
        return len(self._stack)

    @property
    def bits_used(self) -> int:
        """Total bits spent by the responses this cache has stored."""
        return self._bits_used

    @property
    def requests_used(self) -> int:
        """Number of successful requests made to fill this cache."""
        return self._requests_used

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def pending_error(self) -> Exception | None:
        """Failure that get() will raise; once set it is never cleared."""
        return self._error

    def stop(self) -> None:
        """Stop future population; an in-flight request still completes."""
        self._paused = True

    def resume(self) -> None:
        """Allow population again and refill if needed."""
        self._paused = False
        self._refresh()

    def get(self) -> Any:
        """Pop one result set without waiting.

        Returns:
            One result set in the shape of the configured request.

        Raises:
            CacheEmptyError: If nothing is cached; `paused` tells whether a
                refill is under way.
            RandomOrgError: The pending failure recorded by population.
        """
        if self._error is not None:
            raise self._error
        if not self._stack:
            if self._paused:
                raise CacheEmptyError(
                    code="cache_empty",
                    message=(
                        "The cache is empty and paused. Call resume() to restart "
                        "populating the cache."
                    ),
                    paused=True,
                )
            raise CacheEmptyError(
                code="cache_empty",
                message="The cache is empty, wait for it to repopulate itself.",
                paused=False,
            )

        data = self._stack.pop()
        self._refresh()
        return data

    async def get_or_wait(self) -> Any:
        """Pop one result set, waiting for population while the cache is active.

        Raises:
            CacheEmptyError: If the cache is empty and paused.
            RandomOrgError: The pending failure recorded by population.
        """
        while True:
            try:
                return self.get()
            except CacheEmptyError as exc:
                if exc.paused:
                    raise
            await self._populate()
            if not self._stack and self._error is None:
                await self._sleep(self._poll_interval_s)

    def _needs_population(self) -> bool:
        if self.bulk_factor > 0:
            return len(self._stack) <= self.cache_size - self.bulk_factor
        return len(self._stack) < self.cache_size

    def _refresh(self) -> None:
        if self._needs_population() and not self._populating and not self._paused:
            self._spawn(self._populate())

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: population starts on the first get_or_wait()/resume()
            coro.close()
            logger.debug("cache.populate_deferred", extra={"method": self._request.get("method")})
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _populate(self) -> None:
        if self._populating or self._paused:
            return
        self._populating = True
        try:
            while self._error is None and not self._paused and self._needs_population():
                if self.bulk_factor > 0:
                    await self._populate_bulk()
                else:
                    await self._populate_single()
        finally:
            self._populating = False

    async def _populate_single(self) -> None:
        try:
            response = await self._dispatch(self._request)
        except Exception as exc:  # noqa: BLE001 - becomes the cache's pending failure
            self._record_failure(exc)
            return
        self._add_response(response, bulk=False)

    async def _populate_bulk(self) -> None:
        try:
            response = await self._dispatch(self._request)
        except InsufficientBitsError as exc:
            await self._populate_shrunk(exc)
            return
        except Exception as exc:  # noqa: BLE001 - becomes the cache's pending failure
            self._record_failure(exc)
            return
        self._add_response(response, bulk=True)

    async def _populate_shrunk(self, exc: InsufficientBitsError) -> None:
        if exc.bits_left < self.unit_bits:
            self._record_failure(exc)
            return

        units = min(self.bulk_factor, exc.bits_left // self.unit_bits)
        logger.info(
            "cache.batch_shrunk",
            extra={
                "method": self._request.get("method"),
                "bits_left": exc.bits_left,
                "units": units,
                "bulk_factor": self.bulk_factor,
            },
        )
        self._resize_request(units * self.request_count)
        try:
            response = await self._dispatch(self._request)
        except Exception as retry_exc:  # noqa: BLE001 - becomes the cache's pending failure
            self._record_failure(retry_exc)
            return
        finally:
            self._request["params"] = copy.deepcopy(self._bulk_params)
        self._add_response(response, bulk=True)

    def _resize_request(self, n: int) -> None:
        # Per-sequence lists are tiled copies, so a prefix of length n stays valid
        params = self._request["params"]
        bulk_n = self._bulk_params["n"]
        for key, value in self._bulk_params.items():
            if isinstance(value, list) and len(value) == bulk_n:
                params[key] = value[:n]
        params["n"] = n

    def _record_failure(self, exc: Exception) -> None:
        logger.warning(
            "cache.population_failed",
            extra={
                "method": self._request.get("method"),
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        self._error = exc

    def _add_response(self, response: dict[str, Any], *, bulk: bool) -> None:
        try:
            result = response["result"]
            data = result["random"]["data"]
            bits_used = result.get("bitsUsed") or 0
        except (KeyError, TypeError, AttributeError) as exc:
            self._record_failure(
                JsonRpcError(
                    code="malformed_response",
                    message=f"Response result carries no random data: {exc!r}",
                    details={"method": self._request.get("method", "")},
                )
            )
            return
        if not isinstance(data, list):
            self._record_failure(
                JsonRpcError(
                    code="malformed_response",
                    message=f"Response random data is not a list: {type(data).__name__}",
                    details={"method": self._request.get("method", "")},
                )
            )
            return

        self._requests_used += 1
        self._bits_used += bits_used
        if bulk:
            for i in range(0, len(data), self.request_count):
                self._stack.append(data[i : i + self.request_count])
        else:
            self._stack.append(data)

        logger.debug(
            "cache.populated",
            extra={
                "method": self._request.get("method"),
                "cached": len(self._stack),
                "bits_used": self._bits_used,
                "requests_used": self._requests_used,
            },
        )
