from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
import time
from typing import Any, Callable

from ..constants import LOGGER, MIN_TOKEN_LIFETIME_SECONDS, TOKEN_REFRESH_MARGIN_SECONDS
from ..errors import AuthenticationError, MailSafeProError
from ..http import HttpClient
from ..validation import (
    sanitize_email_for_logging,
    validate_api_key,
    validate_email,
    validate_password,
)
from . import api
from .models import UserSession

API_KEY_HEADER = "X-API-Key"


class SessionManager:
    """Owns the credentials used for every request.

    Holds either a static API key, a bearer session obtained through
    login/register, or both. Callers only ever receive copies of the session.
    """

    def __init__(
        self,
        http_client: HttpClient,
        *,
        api_key: str | None = None,
        auto_refresh: bool = True,
        refresh_margin_seconds: float = TOKEN_REFRESH_MARGIN_SECONDS,
        min_token_lifetime_seconds: float = MIN_TOKEN_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.time,
        call_later: Callable[[float, Callable[[], None]], Any] | None = None,
        logger: logging.Logger | None = None,
        login_fn=api.login,
        register_fn=api.register,
        refresh_fn=api.refresh,
        logout_fn=api.logout,
    ) -> None:
        if api_key is not None:
            validate_api_key(api_key)

        self._http = http_client
        self._api_key = api_key
        self._auto_refresh = auto_refresh
        self._refresh_margin = refresh_margin_seconds
        self._min_token_lifetime = min_token_lifetime_seconds
        self._clock = clock
        self._call_later = call_later
        self._logger = logger or LOGGER

        self._login_fn = login_fn
        self._register_fn = register_fn
        self._refresh_fn = refresh_fn
        self._logout_fn = logout_fn

        self._session: UserSession | None = None
        self._refresh_handle: Any = None
        self._refresh_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

        self._logger.debug(
            "SessionManager initialized has_api_key=%s auto_refresh=%s",
            api_key is not None,
            auto_refresh,
        )

    async def login(self, email: str, password: str) -> UserSession:
        validate_email(email)
        validate_password(password)

        masked = sanitize_email_for_logging(email)
        self._logger.info("Attempting login for %s", masked)
        try:
            payload = await self._login_fn(self._http, email, password)
            session = UserSession.from_payload(payload, now=self._clock(), email=email)
        except MailSafeProError as error:
            self._logger.error("Login failed for %s: %s", masked, error)
            raise

        self._store(session)
        self._logger.info("Login successful for %s scopes=%s", masked, list(session.scopes))
        return session

    async def register(
        self, email: str, password: str, name: str | None = None
    ) -> UserSession:
        validate_email(email)
        validate_password(password)

        masked = sanitize_email_for_logging(email)
        self._logger.info("Attempting registration for %s", masked)
        try:
            payload = await self._register_fn(self._http, email, password, name)
            session = UserSession.from_payload(payload, now=self._clock(), email=email)
        except MailSafeProError as error:
            self._logger.error("Registration failed for %s: %s", masked, error)
            raise

        self._store(session)
        self._logger.info("Registration successful for %s", masked)
        return session

    async def refresh(self) -> UserSession:
        """Exchange the refresh token for a new session.

        Concurrent callers share a single in-flight refresh and its outcome.
        On failure the session is dropped and no further refresh is scheduled.
        """
        task = self._refresh_task
        if task is None:
            if self._session is None:
                raise AuthenticationError("No refresh token available", status_code=None)
            task = asyncio.ensure_future(self._do_refresh(self._session))
            task.add_done_callback(self._refresh_finished)
            self._refresh_task = task
        else:
            self._logger.debug("Refresh already in progress, joining it")

        return await asyncio.shield(task)

    async def logout(self) -> None:
        if self._session is None and self._api_key is None:
            self._logger.warning("Logout called but no active session")
            return

        self._logger.info("Logging out")
        try:
            await self._logout_fn(self._http, self.get_auth_headers())
        except MailSafeProError as error:
            self._logger.warning("Logout request failed: %s", error)
        finally:
            self._session = None
            self._cancel_scheduled_refresh()
            self._logger.info("Logged out")

    def get_auth_headers(self) -> dict[str, str]:
        if self._api_key:
            return {API_KEY_HEADER: self._api_key}
        if self._session is not None:
            return {"Authorization": f"Bearer {self._session.access_token}"}
        return {}

    def get_session(self) -> UserSession | None:
        if self._session is None:
            return None
        return dataclasses.replace(self._session)

    def is_authenticated(self) -> bool:
        if self._api_key:
            return True
        return self.is_session_valid()

    def is_session_valid(self) -> bool:
        if self._session is None:
            return False
        return not self._session.is_expired(self._clock())

    def seconds_until_expiry(self) -> int | None:
        if self._session is None:
            return None
        return math.floor(self._session.seconds_until_expiry(self._clock()))

    def set_api_key(self, api_key: str) -> None:
        validate_api_key(api_key)
        self._api_key = api_key
        self._logger.info("API key set")

    def clear_api_key(self) -> None:
        self._api_key = None
        self._logger.info("API key cleared")

    def set_auto_refresh(self, enabled: bool) -> None:
        self._auto_refresh = enabled
        self._logger.debug("Auto-refresh %s", "enabled" if enabled else "disabled")

        if not enabled:
            self._cancel_scheduled_refresh()
            return

        remaining = self.seconds_until_expiry()
        if remaining:
            self._schedule_refresh(remaining)

    def close(self) -> None:
        self._cancel_scheduled_refresh()
        for task in list(self._background):
            task.cancel()

    def _store(self, session: UserSession) -> None:
        self._session = session
        if self._auto_refresh:
            self._schedule_refresh(session.expires_in)

    async def _do_refresh(self, previous: UserSession) -> UserSession:
        self._logger.info("Refreshing access token")
        try:
            payload = await self._refresh_fn(self._http, previous.refresh_token)
            session = UserSession.from_payload(
                payload,
                now=self._clock(),
                email=previous.email,
                scopes=previous.scopes,
            )
        except Exception as error:
            self._logger.error("Token refresh failed: %s", error)
            if self._session is previous:
                self._session = None
                self._cancel_scheduled_refresh()
            raise

        if self._session is not previous:
            # Logged out or replaced while the request was in flight.
            raise AuthenticationError("Session ended during token refresh", status_code=None)

        self._store(session)
        self._logger.info("Token refreshed, expires_at=%s", session.expires_at)
        return session

    def _refresh_finished(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # Marks the exception as retrieved when every caller went away.
            task.exception()

    def _schedule_refresh(self, expires_in: float) -> None:
        self._cancel_scheduled_refresh()

        delay = expires_in - self._refresh_margin
        if expires_in < self._min_token_lifetime or delay <= 0:
            self._logger.warning(
                "Token expires too soon (%ss), skipping auto-refresh", expires_in
            )
            return

        call_later = self._call_later or asyncio.get_running_loop().call_later
        self._refresh_handle = call_later(delay, self._on_refresh_due)
        self._logger.debug("Scheduled token refresh in %ss", round(delay))

    def _cancel_scheduled_refresh(self) -> None:
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
            self._refresh_handle = None
            self._logger.debug("Scheduled token refresh cancelled")

    def _on_refresh_due(self) -> None:
        self._refresh_handle = None
        task = asyncio.ensure_future(self._auto_refresh_once())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _auto_refresh_once(self) -> None:
        try:
            await self.refresh()
        except MailSafeProError as error:
            self._logger.error("Automatic token refresh failed: %s", error)
        else:
            self._logger.info("Token auto-refreshed")
