from __future__ import annotations

import logging
import random
import string
import time
from typing import Any, Callable, Mapping

import httpx

from .constants import LOGGER, RATE_LIMIT_WARNING_RATIO, REDACTED, SENSITIVE_HEADERS
from .errors import (
    APIError,
    AuthenticationError,
    ErrorKind,
    MailSafeProError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    TimeoutError,
    ValidationError,
)

REQUEST_ID_HEADER = "X-Request-ID"
_STARTED_AT_KEY = "mailsafepro_started_at"
_REQUEST_ID_KEY = "mailsafepro_request_id"
_BASE36 = string.digits + string.ascii_lowercase

_STATUS_KINDS = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTHENTICATION,
    402: ErrorKind.QUOTA_EXCEEDED,
    403: ErrorKind.AUTHENTICATION,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMIT,
}
SERVER_ERROR_STATUSES = frozenset({500, 502, 503, 504})

_DEFAULT_MESSAGES = {
    400: "Validation failed",
    401: "Authentication failed",
    402: "Quota exceeded",
    403: "Access forbidden",
    404: "Resource not found",
    422: "Unprocessable entity",
    429: "Rate limit exceeded",
}


def classify_status(status_code: int) -> ErrorKind:
    return _STATUS_KINDS.get(status_code, ErrorKind.API)


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_request_id() -> str:
    timestamp = _to_base36(int(time.time() * 1000))
    random_part = "".join(random.choices(_BASE36, k=9))
    return f"req_{timestamp}_{random_part}"


def sanitize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    return {
        key: REDACTED if key.lower() in SENSITIVE_HEADERS else str(value)
        for key, value in headers.items()
    }


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _header(headers: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = headers.get(name)
        if value:
            return value
    return None


def parse_rate_limit_headers(headers: Mapping[str, str]) -> dict[str, int]:
    values = {
        "limit": _parse_int(_header(headers, "x-ratelimit-limit", "ratelimit-limit")),
        "remaining": _parse_int(
            _header(headers, "x-ratelimit-remaining", "ratelimit-remaining")
        ),
        "reset": _parse_int(_header(headers, "x-ratelimit-reset", "ratelimit-reset")),
    }
    return {key: value for key, value in values.items() if value is not None}


def seconds_until_reset(reset_epoch: int | None, *, now: float | None = None) -> int | None:
    if reset_epoch is None:
        return None
    current = time.time() if now is None else now
    return max(0, reset_epoch - int(current))


def _error_payload(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        text = response.text
        return {"raw": text} if text else {}
    if isinstance(payload, dict):
        return payload
    return {"raw": payload}


def _server_message(payload: Mapping[str, Any]) -> str | None:
    for key in ("message", "detail"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def build_error(
    status_code: int,
    payload: Mapping[str, Any],
    headers: Mapping[str, str],
    url: str,
) -> MailSafeProError:
    """Map an HTTP failure response onto the typed error taxonomy."""
    kind = classify_status(status_code)
    server_message = _server_message(payload)
    details = {**payload, "url": url}

    if kind is ErrorKind.AUTHENTICATION:
        return AuthenticationError(
            server_message or _DEFAULT_MESSAGES[status_code],
            status_code=status_code,
            details=details,
        )

    if kind is ErrorKind.RATE_LIMIT:
        rate_limit = parse_rate_limit_headers(headers)
        retry_after = _parse_int(headers.get("retry-after"))
        if retry_after is None:
            retry_after = seconds_until_reset(rate_limit.get("reset"))
        return RateLimitError(
            server_message or _DEFAULT_MESSAGES[status_code],
            retry_after=retry_after,
            limit=rate_limit.get("limit"),
            remaining=rate_limit.get("remaining"),
            reset=rate_limit.get("reset"),
            details={**rate_limit, "url": url},
        )

    if kind is ErrorKind.VALIDATION:
        return ValidationError(
            server_message or _DEFAULT_MESSAGES[status_code],
            status_code=status_code,
            details=details,
        )

    if kind is ErrorKind.QUOTA_EXCEEDED:
        used = payload.get("used")
        limit = payload.get("limit")
        return QuotaExceededError(
            server_message or _DEFAULT_MESSAGES[status_code],
            used=used if isinstance(used, int) else None,
            limit=limit if isinstance(limit, int) else None,
            details=details,
        )

    if status_code in SERVER_ERROR_STATUSES:
        return APIError(
            server_message or f"Server error: {status_code}",
            status_code=status_code,
            details={**details, "retryable": True},
        )

    return APIError(
        server_message or _DEFAULT_MESSAGES.get(status_code, f"API error: {status_code}"),
        status_code=status_code,
        details=details,
    )


def transport_code_for(error: BaseException) -> str:
    if isinstance(error, httpx.TimeoutException):
        return "ETIMEDOUT"
    if isinstance(error, httpx.ConnectError):
        return "ECONNREFUSED"
    if isinstance(error, (httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError)):
        return "ECONNRESET"
    if isinstance(error, httpx.NetworkError):
        return "ENETUNREACH"
    return "ERR_TRANSPORT"


def is_timeout(error: BaseException) -> bool:
    return isinstance(error, httpx.TimeoutException) or "timeout" in str(error).lower()


class TransportInterceptor:
    """Tags outgoing requests and turns failures into typed errors."""

    def __init__(
        self,
        *,
        logger: logging.Logger | None = None,
        on_auth_error: Callable[[AuthenticationError], Any] | None = None,
        on_rate_limit: Callable[[RateLimitError], Any] | None = None,
        on_quota_exceeded: Callable[[QuotaExceededError], Any] | None = None,
        request_id_factory: Callable[[], str] = generate_request_id,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._logger = logger or LOGGER
        self._on_auth_error = on_auth_error
        self._on_rate_limit = on_rate_limit
        self._on_quota_exceeded = on_quota_exceeded
        self._request_id_factory = request_id_factory
        self._clock = clock

    def event_hooks(self) -> dict[str, list]:
        return {"request": [self.on_request], "response": [self.on_response]}

    async def on_request(self, request: httpx.Request) -> None:
        request_id = self._request_id_factory()
        request.headers[REQUEST_ID_HEADER] = request_id
        request.extensions[_REQUEST_ID_KEY] = request_id
        request.extensions[_STARTED_AT_KEY] = self._clock()

        self._logger.debug(
            "HTTP request id=%s %s %s headers=%s",
            request_id,
            request.method,
            request.url,
            sanitize_headers(request.headers),
        )

    async def on_response(self, response: httpx.Response) -> None:
        if response.status_code >= 400:
            # Failures are logged once, when they are classified.
            return

        request = response.request
        rate_limit = parse_rate_limit_headers(response.headers)
        self._logger.debug(
            "HTTP response id=%s %s -> %s duration=%s rate_limit=%s",
            request.extensions.get(_REQUEST_ID_KEY),
            request.url,
            response.status_code,
            self._duration(request),
            rate_limit,
        )

        limit = rate_limit.get("limit")
        remaining = rate_limit.get("remaining")
        if limit and remaining is not None:
            ratio = remaining / limit
            if ratio < RATE_LIMIT_WARNING_RATIO:
                self._logger.warning(
                    "Approaching rate limit remaining=%s limit=%s percentage=%.1f%%",
                    remaining,
                    limit,
                    ratio * 100,
                )

    def error_from_response(self, response: httpx.Response) -> MailSafeProError:
        request = response.request
        payload = _error_payload(response)
        url = str(request.url)
        error = build_error(response.status_code, payload, response.headers, url)

        self._logger.error(
            "API error response id=%s status=%s %s %s message=%s duration=%s",
            request.extensions.get(_REQUEST_ID_KEY),
            response.status_code,
            request.method,
            url,
            error.message,
            self._duration(request),
        )

        if isinstance(error, AuthenticationError):
            self._notify(self._on_auth_error, error)
        elif isinstance(error, RateLimitError):
            self._notify(self._on_rate_limit, error)
        elif isinstance(error, QuotaExceededError):
            self._notify(self._on_quota_exceeded, error)
        return error

    def error_from_transport(
        self, error: BaseException, request: httpx.Request | None = None
    ) -> NetworkError:
        if request is None and isinstance(error, httpx.RequestError):
            try:
                request = error.request
            except RuntimeError:
                request = None

        url = str(request.url) if request is not None else None
        timed_out = is_timeout(error)
        transport_code = transport_code_for(error)

        self._logger.error(
            "Network error id=%s url=%s code=%s timeout=%s duration=%s: %s",
            request.extensions.get(_REQUEST_ID_KEY) if request is not None else None,
            url,
            transport_code,
            timed_out,
            self._duration(request) if request is not None else None,
            error,
        )

        details = {"url": url, "error": str(error), "error_type": type(error).__name__}
        if timed_out:
            return TimeoutError(details=details)
        return NetworkError(transport_code=transport_code, details=details)

    def _duration(self, request: httpx.Request) -> str | None:
        started_at = request.extensions.get(_STARTED_AT_KEY)
        if started_at is None:
            return None
        return f"{round((self._clock() - started_at) * 1000)}ms"

    def _notify(self, callback: Callable[[Any], Any] | None, error: MailSafeProError) -> None:
        if callback is None:
            return
        try:
            callback(error)
        except Exception as callback_error:
            self._logger.warning(
                "%s callback failed: %s", type(error).__name__, callback_error
            )
