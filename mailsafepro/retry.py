"""Exponential backoff with jitter for failed operations."""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable

import httpx

from .constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_DELAY_MS,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    LOGGER,
    RETRY_ERROR_CODES,
    RETRY_STATUS_CODES,
)

RetryCallback = Callable[[int, BaseException, float], Any]


@dataclass
class RetryConfig:
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay_ms: float = DEFAULT_INITIAL_DELAY_MS
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    retryable_status_codes: frozenset[int] = field(default_factory=lambda: RETRY_STATUS_CODES)
    retryable_error_codes: frozenset[str] = field(default_factory=lambda: RETRY_ERROR_CODES)
    on_retry: RetryCallback | None = None

    def base_delay(self, attempt: int) -> float:
        """Backoff for a 0-indexed attempt, in ms, before jitter."""
        delay = self.initial_delay_ms * (self.backoff_multiplier**attempt)
        return min(delay, self.max_delay_ms)

    def calculate_delay(
        self,
        attempt: int,
        *,
        retry_after: float | None = None,
        random_fn: Callable[[], float] = random.random,
    ) -> float:
        if retry_after is not None:
            return min(retry_after * 1000, self.max_delay_ms)
        return self.base_delay(attempt) * (0.5 + random_fn() * 0.5)

    def is_retryable(self, error: BaseException) -> bool:
        status_code = _status_code(error)
        if status_code is not None and status_code in self.retryable_status_codes:
            return True
        transport_code = getattr(error, "transport_code", None)
        return transport_code is not None and transport_code in self.retryable_error_codes


def _status_code(error: BaseException) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status_code = getattr(error, "status_code", None)
    return status_code if isinstance(status_code, int) else None


def _retry_after(error: BaseException) -> float | None:
    retry_after = getattr(error, "retry_after", None)
    if isinstance(retry_after, (int, float)) and not isinstance(retry_after, bool):
        return float(retry_after)
    if isinstance(error, httpx.HTTPStatusError):
        header = error.response.headers.get("retry-after")
        if header is not None:
            try:
                return float(int(header))
            except ValueError:
                return None
    return None


async def execute_with_retry(
    operation: Callable[[], Awaitable[Any]],
    config: RetryConfig | None = None,
    *,
    sleep=asyncio.sleep,
    random_fn: Callable[[], float] = random.random,
    logger: logging.Logger | None = None,
) -> Any:
    config = config or RetryConfig()
    logger = logger or LOGGER
    max_retries = max(0, config.max_retries)
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as error:
            logger.debug(
                "Attempt %s/%s failed status=%s code=%s: %s",
                attempt + 1,
                max_retries + 1,
                _status_code(error),
                getattr(error, "transport_code", None),
                error,
            )

            if not config.is_retryable(error):
                raise

            if attempt >= max_retries:
                logger.warning("Max retries (%s) exceeded: %s", max_retries, error)
                raise

            retry_after = _retry_after(error)
            delay_ms = config.calculate_delay(
                attempt, retry_after=retry_after, random_fn=random_fn
            )
            if retry_after is not None:
                logger.info("Using Retry-After header: %ss", retry_after)
            logger.info(
                "Retry attempt %s/%s after %sms",
                attempt + 1,
                max_retries,
                round(delay_ms),
            )

            if config.on_retry is not None:
                try:
                    result = config.on_retry(attempt + 1, error, delay_ms)
                    if inspect.isawaitable(result):
                        await result
                except Exception as callback_error:
                    logger.warning("Retry callback failed: %s", callback_error)

            await sleep(delay_ms / 1000)
            attempt += 1


class RetryPolicy:
    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        sleep=asyncio.sleep,
        random_fn: Callable[[], float] = random.random,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._random_fn = random_fn
        self._logger = logger or LOGGER

    def update(self, **changes: Any) -> None:
        self.config = replace(self.config, **changes)
        self._logger.debug("Retry config updated: %s", self.config)

    async def execute(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        return await execute_with_retry(
            operation,
            self.config,
            sleep=self._sleep,
            random_fn=self._random_fn,
            logger=self._logger,
        )
