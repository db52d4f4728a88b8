from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

import httpx

from .constants import DEFAULT_HEADERS, DEFAULT_TIMEOUT, LOGGER
from .interceptors import TransportInterceptor
from .rate_limiter import RateLimitConfig, RateLimiter
from .retry import RetryConfig, RetryPolicy


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpClient:
    """Sends requests through the rate limiter and the retry policy.

    Each logical request is one retryable unit; every attempt queues again in
    the rate limiter, so retries are paced like any other call.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Mapping[str, str] | None = None,
        retry_config: RetryConfig | None = None,
        rate_limit_config: RateLimitConfig | None = None,
        enable_retry: bool = True,
        enable_rate_limit: bool = True,
        interceptor: TransportInterceptor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or LOGGER
        self._interceptor = interceptor or TransportInterceptor(logger=self._logger)
        self._retry_policy = RetryPolicy(retry_config, sleep=sleep, logger=self._logger)
        self._retry_enabled = enable_retry

        self._rate_limiter: RateLimiter | None = None
        if enable_rate_limit:
            self._rate_limiter = RateLimiter.from_config(
                rate_limit_config or RateLimitConfig(), logger=self._logger
            )

        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={**DEFAULT_HEADERS, **(headers or {})},
            timeout=timeout,
            transport=transport,
            event_hooks=self._interceptor.event_hooks(),
        )

        self._logger.debug(
            "HttpClient initialized base_url=%s timeout=%s retry=%s rate_limit=%s",
            base_url,
            timeout,
            enable_retry,
            self._rate_limiter is not None,
        )

    @property
    def rate_limiter(self) -> RateLimiter | None:
        return self._rate_limiter

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_policy.config

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        data: Mapping[str, Any] | None = None,
        files: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        options: dict[str, Any] = {"headers": headers}
        if json is not None:
            options["json"] = json
        if data is not None:
            options["data"] = data
        if files is not None:
            options["files"] = files
        if timeout is not None:
            options["timeout"] = timeout

        async def send() -> Any:
            try:
                response = await self._client.request(method, url, **options)
            except httpx.TransportError as error:
                raise self._interceptor.error_from_transport(error) from error

            if response.status_code >= 400:
                raise self._interceptor.error_from_response(response)
            return _decode_body(response)

        operation = send
        if self._rate_limiter is not None:
            limiter = self._rate_limiter

            async def limited() -> Any:
                return await limiter.execute(send)

            operation = limited

        if self._retry_enabled:
            return await self._retry_policy.execute(operation)
        return await operation()

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        return await self.request("POST", url, **kwargs)

    def get_rate_limiter_stats(self) -> dict[str, float] | None:
        if self._rate_limiter is None:
            return None
        return self._rate_limiter.get_stats()

    def clear_rate_limiter(self) -> None:
        if self._rate_limiter is not None:
            self._rate_limiter.clear()

    def update_retry_config(self, **changes: Any) -> None:
        self._retry_policy.update(**changes)

    async def aclose(self) -> None:
        self.clear_rate_limiter()
        await self._client.aclose()
