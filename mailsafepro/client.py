from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Callable

import httpx

from .auth.models import UserSession
from .auth.session import SessionManager
from .batch import ProgressCallback
from .constants import LOGGER, SDK_VERSION
from .emails import EmailValidationClient, FileInput
from .env import ClientSettings, load_env
from .errors import (
    AuthenticationError,
    ConfigurationError,
    QuotaExceededError,
    RateLimitError,
    ValidationError,
)
from .http import HttpClient
from .interceptors import TransportInterceptor
from .models import BatchJobStatus, BatchValidationResult, EmailValidationResult
from .validation import validate_api_key, validate_base_url


class MailSafeProClient:
    """Entry point of the SDK.

    Wires one shared request pipeline into the session manager and the email
    validation operations::

        async with MailSafeProClient(api_key="msp_...") as client:
            result = await client.validate_email("someone@example.com")
    """

    version = SDK_VERSION

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep=asyncio.sleep,
        call_later: Callable[[float, Callable[[], None]], Any] | None = None,
        logger: logging.Logger | None = None,
        on_auth_error: Callable[[AuthenticationError], Any] | None = None,
        on_rate_limit: Callable[[RateLimitError], Any] | None = None,
        on_quota_exceeded: Callable[[QuotaExceededError], Any] | None = None,
    ) -> None:
        settings = settings or ClientSettings()
        overrides = {
            key: value
            for key, value in (("api_key", api_key), ("base_url", base_url))
            if value is not None
        }
        if overrides:
            settings = dataclasses.replace(settings, **overrides)

        validate_base_url(settings.base_url)
        if settings.api_key is not None:
            try:
                validate_api_key(settings.api_key)
            except ValidationError as error:
                raise ConfigurationError(
                    "Invalid API Key", details={"error": error.message}
                ) from error

        self._settings = settings
        self._logger = logger or LOGGER
        self._logger.info(
            "Initializing MailSafePro SDK v%s base_url=%s has_api_key=%s",
            SDK_VERSION,
            settings.base_url,
            settings.api_key is not None,
        )

        interceptor = TransportInterceptor(
            logger=self._logger,
            on_auth_error=on_auth_error,
            on_rate_limit=on_rate_limit,
            on_quota_exceeded=on_quota_exceeded,
        )
        self._http = HttpClient(
            settings.base_url,
            timeout=settings.timeout,
            retry_config=settings.retry_config(),
            rate_limit_config=settings.rate_limit_config(),
            enable_retry=settings.enable_retry,
            enable_rate_limit=settings.enable_rate_limit,
            interceptor=interceptor,
            transport=transport,
            sleep=sleep,
            logger=self._logger,
        )
        self._session = SessionManager(
            self._http,
            api_key=settings.api_key,
            auto_refresh=settings.auto_refresh,
            refresh_margin_seconds=settings.refresh_margin_seconds,
            min_token_lifetime_seconds=settings.min_token_lifetime_seconds,
            call_later=call_later,
            logger=self._logger,
        )
        self._emails = EmailValidationClient(
            self._http,
            self._session.get_auth_headers,
            sleep=sleep,
            logger=self._logger,
        )

    @classmethod
    def from_env(cls, *, env_file: str | None = None, **kwargs: Any) -> "MailSafeProClient":
        load_env(env_file)
        return cls(ClientSettings.from_env(), **kwargs)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def login(self, email: str, password: str) -> UserSession:
        return await self._session.login(email, password)

    async def register(
        self, email: str, password: str, name: str | None = None
    ) -> UserSession:
        return await self._session.register(email, password, name)

    async def logout(self) -> None:
        await self._session.logout()

    async def refresh_token(self) -> UserSession:
        return await self._session.refresh()

    def get_session(self) -> UserSession | None:
        return self._session.get_session()

    def is_authenticated(self) -> bool:
        return self._session.is_authenticated()

    def set_api_key(self, api_key: str) -> None:
        self._session.set_api_key(api_key)

    def clear_api_key(self) -> None:
        self._session.clear_api_key()

    def set_auto_refresh(self, enabled: bool) -> None:
        self._session.set_auto_refresh(enabled)

    async def validate_email(
        self,
        email: str,
        *,
        check_smtp: bool | None = None,
        include_raw_dns: bool | None = None,
        timeout: float | None = None,
    ) -> EmailValidationResult:
        return await self._emails.validate_email(
            email, check_smtp=check_smtp, include_raw_dns=include_raw_dns, timeout=timeout
        )

    async def batch_validate_emails(
        self,
        emails: list[str],
        *,
        check_smtp: bool | None = None,
        include_raw_dns: bool | None = None,
    ) -> BatchValidationResult:
        return await self._emails.batch_validate_emails(
            emails, check_smtp=check_smtp, include_raw_dns=include_raw_dns
        )

    async def upload_file_batch(
        self,
        file: FileInput,
        *,
        filename: str | None = None,
        content_type: str | None = None,
        check_smtp: bool | None = None,
        include_raw_dns: bool | None = None,
    ) -> BatchJobStatus:
        return await self._emails.upload_file_batch(
            file,
            filename=filename,
            content_type=content_type,
            check_smtp=check_smtp,
            include_raw_dns=include_raw_dns,
        )

    async def get_batch_status(self, job_id: str) -> BatchJobStatus:
        return await self._emails.get_batch_status(job_id)

    async def get_batch_results(self, job_id: str) -> BatchValidationResult:
        return await self._emails.get_batch_results(job_id)

    async def wait_for_batch_completion(
        self,
        job_id: str,
        *,
        poll_interval_ms: float | None = None,
        timeout_ms: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchValidationResult:
        return await self._emails.wait_for_batch_completion(
            job_id,
            poll_interval_ms=(
                self._settings.poll_interval_ms
                if poll_interval_ms is None
                else poll_interval_ms
            ),
            timeout_ms=self._settings.poll_timeout_ms if timeout_ms is None else timeout_ms,
            on_progress=on_progress,
        )

    async def cancel_batch(self, job_id: str) -> None:
        await self._emails.cancel_batch(job_id)

    async def validate_emails_with_retry(
        self,
        emails: list[str],
        *,
        check_smtp: bool | None = None,
        include_raw_dns: bool | None = None,
        max_retries: int = 3,
        on_progress: Callable[[int, int], Any] | None = None,
    ) -> list[EmailValidationResult]:
        return await self._emails.validate_emails_with_retry(
            emails,
            check_smtp=check_smtp,
            include_raw_dns=include_raw_dns,
            max_retries=max_retries,
            on_progress=on_progress,
        )

    def get_rate_limiter_stats(self) -> dict[str, float] | None:
        return self._http.get_rate_limiter_stats()

    def clear_rate_limiter(self) -> None:
        self._http.clear_rate_limiter()

    async def aclose(self) -> None:
        self._session.close()
        await self._http.aclose()
        self._logger.debug("MailSafePro client closed")

    async def __aenter__(self) -> "MailSafeProClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
