import logging
import time

import httpx
import pytest

from mailsafepro.constants import REDACTED
from mailsafepro.errors import (
    APIError,
    AuthenticationError,
    ErrorKind,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    TimeoutError,
    ValidationError,
)
from mailsafepro.interceptors import (
    REQUEST_ID_HEADER,
    TransportInterceptor,
    build_error,
    classify_status,
    generate_request_id,
    parse_rate_limit_headers,
    sanitize_headers,
    transport_code_for,
)

URL = "https://api.example.com/v1/email/validate"


def _response(status: int, *, json=None, headers=None) -> httpx.Response:
    request = httpx.Request("POST", URL)
    return httpx.Response(status, request=request, json=json, headers=headers)


@pytest.mark.parametrize(
    "status, kind",
    [
        (400, ErrorKind.VALIDATION),
        (422, ErrorKind.VALIDATION),
        (401, ErrorKind.AUTHENTICATION),
        (403, ErrorKind.AUTHENTICATION),
        (402, ErrorKind.QUOTA_EXCEEDED),
        (429, ErrorKind.RATE_LIMIT),
        (404, ErrorKind.API),
        (500, ErrorKind.API),
        (418, ErrorKind.API),
    ],
)
def test_classify_status(status, kind) -> None:
    assert classify_status(status) is kind


def test_auth_error_uses_server_message() -> None:
    error = build_error(401, {"detail": "Token expired"}, {}, URL)

    assert isinstance(error, AuthenticationError)
    assert error.message == "Token expired"
    assert error.status_code == 401
    assert error.details["url"] == URL


def test_forbidden_falls_back_to_default_message() -> None:
    error = build_error(403, {}, {}, URL)

    assert isinstance(error, AuthenticationError)
    assert error.message == "Access forbidden"
    assert error.status_code == 403


def test_validation_error_from_response() -> None:
    error = build_error(422, {"message": "email is invalid"}, {}, URL)

    assert isinstance(error, ValidationError)
    assert error.status_code == 422
    assert error.message == "email is invalid"


def test_rate_limit_error_reads_headers() -> None:
    headers = httpx.Headers(
        {
            "Retry-After": "60",
            "X-RateLimit-Limit": "100",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": "1700000000",
        }
    )

    error = build_error(429, {}, headers, URL)

    assert isinstance(error, RateLimitError)
    assert error.retry_after == 60
    assert error.limit == 100
    assert error.remaining == 0
    assert error.reset == 1_700_000_000


def test_rate_limit_without_retry_after_uses_reset() -> None:
    reset = int(time.time()) + 30
    headers = httpx.Headers({"ratelimit-reset": str(reset)})

    error = build_error(429, {}, headers, URL)

    assert isinstance(error, RateLimitError)
    assert 28 <= error.retry_after <= 30


def test_quota_error_carries_usage() -> None:
    error = build_error(402, {"message": "Plan limit", "used": 500, "limit": 500}, {}, URL)

    assert isinstance(error, QuotaExceededError)
    assert error.used == 500
    assert error.limit == 500


@pytest.mark.parametrize("status", [500, 502, 503, 504])
def test_server_errors_are_retryable(status) -> None:
    error = build_error(status, {}, {}, URL)

    assert type(error) is APIError
    assert error.retryable is True
    assert error.message == f"Server error: {status}"


def test_not_found_and_unknown_statuses_are_generic() -> None:
    not_found = build_error(404, {}, {}, URL)
    teapot = build_error(418, {}, {}, URL)

    assert not_found.message == "Resource not found"
    assert not_found.retryable is False
    assert teapot.message == "API error: 418"


def test_sanitize_headers_redacts_sensitive_keys() -> None:
    sanitized = sanitize_headers(
        {
            "AUTHORIZATION": "Bearer secret",
            "x-api-key": "key",
            "Cookie": "session=1",
            "Content-Type": "application/json",
        }
    )

    assert sanitized["AUTHORIZATION"] == REDACTED
    assert sanitized["x-api-key"] == REDACTED
    assert sanitized["Cookie"] == REDACTED
    assert sanitized["Content-Type"] == "application/json"


def test_parse_rate_limit_headers_prefers_prefixed() -> None:
    headers = httpx.Headers(
        {"X-RateLimit-Limit": "100", "RateLimit-Limit": "50", "RateLimit-Remaining": "7"}
    )

    assert parse_rate_limit_headers(headers) == {"limit": 100, "remaining": 7}


def test_generate_request_id_format() -> None:
    request_id = generate_request_id()

    prefix, timestamp, random_part = request_id.split("_")
    assert prefix == "req"
    assert timestamp.isalnum()
    assert len(random_part) == 9


@pytest.mark.parametrize(
    "error, code",
    [
        (httpx.ConnectTimeout("timed out"), "ETIMEDOUT"),
        (httpx.ReadTimeout("timed out"), "ETIMEDOUT"),
        (httpx.ConnectError("refused"), "ECONNREFUSED"),
        (httpx.ReadError("reset"), "ECONNRESET"),
        (httpx.RemoteProtocolError("closed"), "ECONNRESET"),
        (httpx.UnsupportedProtocol("ftp"), "ERR_TRANSPORT"),
    ],
)
def test_transport_code_mapping(error, code) -> None:
    assert transport_code_for(error) == code


def test_error_from_transport_timeout() -> None:
    interceptor = TransportInterceptor()

    error = interceptor.error_from_transport(httpx.ReadTimeout("read timed out"))

    assert isinstance(error, TimeoutError)
    assert error.transport_code == "ETIMEDOUT"


def test_error_from_transport_connection_failure() -> None:
    interceptor = TransportInterceptor()
    request = httpx.Request("GET", URL)

    error = interceptor.error_from_transport(httpx.ConnectError("refused", request=request))

    assert type(error) is NetworkError
    assert error.transport_code == "ECONNREFUSED"
    assert error.details["url"] == URL
    assert error.details["error_type"] == "ConnectError"


def test_callbacks_fire_per_classification() -> None:
    seen = []
    interceptor = TransportInterceptor(
        on_auth_error=lambda error: seen.append(("auth", error.status_code)),
        on_rate_limit=lambda error: seen.append(("rate", error.retry_after)),
        on_quota_exceeded=lambda error: seen.append(("quota", error.status_code)),
    )

    interceptor.error_from_response(_response(401))
    interceptor.error_from_response(_response(429, headers={"retry-after": "5"}))
    interceptor.error_from_response(_response(402))
    interceptor.error_from_response(_response(500))

    assert seen == [("auth", 401), ("rate", 5), ("quota", 402)]


def test_failing_callback_is_swallowed() -> None:
    def explode(error):
        raise RuntimeError("host bug")

    interceptor = TransportInterceptor(on_auth_error=explode)

    error = interceptor.error_from_response(_response(401, json={"detail": "nope"}))

    assert isinstance(error, AuthenticationError)
    assert error.message == "nope"


@pytest.mark.asyncio
async def test_request_hook_tags_request_and_redacts_logs(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="mailsafepro")
    interceptor = TransportInterceptor(request_id_factory=lambda: "req_test_1")
    request = httpx.Request(
        "POST", URL, headers={"Authorization": "Bearer top-secret", "X-API-Key": "key-secret"}
    )

    await interceptor.on_request(request)

    assert request.headers[REQUEST_ID_HEADER] == "req_test_1"
    assert "req_test_1" in caplog.text
    assert "top-secret" not in caplog.text
    assert "key-secret" not in caplog.text


@pytest.mark.asyncio
async def test_response_hook_warns_near_rate_limit(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="mailsafepro")
    interceptor = TransportInterceptor()
    response = _response(
        200, json={}, headers={"x-ratelimit-limit": "100", "x-ratelimit-remaining": "5"}
    )

    await interceptor.on_response(response)

    assert "Approaching rate limit" in caplog.text
