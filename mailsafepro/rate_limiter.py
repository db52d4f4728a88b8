"""Client-side pacing of outgoing requests.

Operations are queued FIFO and admitted one at a time by a single admission
loop, so that no two admissions happen closer than ``1 / max_requests_per_second``
apart and no more than ``max_concurrent`` operations are in flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .constants import DEFAULT_MAX_CONCURRENT, DEFAULT_MAX_REQUESTS_PER_SECOND, LOGGER
from .errors import ConfigurationError, NetworkError


@dataclass
class RateLimitConfig:
    max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND
    max_concurrent: int = DEFAULT_MAX_CONCURRENT


@dataclass
class _QueuedTask:
    operation: Callable[[], Awaitable[Any]]
    future: asyncio.Future


class RateLimiter:
    def __init__(
        self,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_requests_per_second <= 0:
            raise ConfigurationError(
                "max_requests_per_second must be positive.",
                details={"max_requests_per_second": max_requests_per_second},
            )
        if max_concurrent <= 0:
            raise ConfigurationError(
                "max_concurrent must be positive.",
                details={"max_concurrent": max_concurrent},
            )

        self._min_interval = 1.0 / max_requests_per_second
        self._max_concurrent = max_concurrent
        self._clock = clock
        self._sleep = sleep
        self._logger = logger or LOGGER

        self._queue: deque[_QueuedTask] = deque()
        self._pending = 0
        self._last_admission: float | None = None
        self._processing = False
        self._tasks: set[asyncio.Task] = set()

        self._logger.debug(
            "RateLimiter initialized: %s req/s, %s concurrent",
            max_requests_per_second,
            max_concurrent,
        )

    @classmethod
    def from_config(cls, config: RateLimitConfig, **kwargs: Any) -> "RateLimiter":
        return cls(config.max_requests_per_second, config.max_concurrent, **kwargs)

    async def execute(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        future = asyncio.get_running_loop().create_future()
        self._queue.append(_QueuedTask(operation=operation, future=future))
        self._logger.debug("Task queued. Queue size: %s", len(self._queue))
        self._start_processing()
        return await future

    def clear(self) -> int:
        dropped = len(self._queue)
        if dropped:
            self._logger.warning("Clearing rate limiter queue: %s tasks dropped", dropped)

        while self._queue:
            entry = self._queue.popleft()
            if not entry.future.done():
                entry.future.set_exception(
                    NetworkError("Rate limiter queue cleared", code="QUEUE_CLEARED")
                )
        return dropped

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def pending_count(self) -> int:
        return self._pending

    def get_stats(self) -> dict[str, float]:
        return {
            "queue_size": len(self._queue),
            "pending_count": self._pending,
            "max_concurrent": self._max_concurrent,
            "min_interval": self._min_interval,
        }

    def _start_processing(self) -> None:
        # Only one admission loop may run; later callers rely on it to
        # pick up their entries.
        if self._processing:
            return
        self._processing = True
        self._spawn(self._process_queue())

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process_queue(self) -> None:
        try:
            while self._queue and self._pending < self._max_concurrent:
                if self._last_admission is not None:
                    wait = self._min_interval - (self._clock() - self._last_admission)
                    if wait > 0:
                        self._logger.debug("Rate limit: waiting %.3fs", wait)
                        await self._sleep(wait)
                        continue

                entry = self._queue.popleft()
                if entry.future.done():
                    # The caller went away while queued.
                    continue

                self._pending += 1
                self._last_admission = self._clock()
                self._logger.debug(
                    "Executing task. Pending: %s/%s, Queue: %s",
                    self._pending,
                    self._max_concurrent,
                    len(self._queue),
                )
                self._spawn(self._run(entry))
        finally:
            self._processing = False

    async def _run(self, entry: _QueuedTask) -> None:
        try:
            result = await entry.operation()
        except asyncio.CancelledError:
            entry.future.cancel()
            raise
        except Exception as error:
            if not entry.future.done():
                entry.future.set_exception(error)
        else:
            if not entry.future.done():
                entry.future.set_result(result)
        finally:
            self._pending -= 1
            self._logger.debug("Task completed. Pending: %s", self._pending)
            if self._queue:
                self._start_processing()
