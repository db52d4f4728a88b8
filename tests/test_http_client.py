import json

import httpx
import pytest

from mailsafepro.constants import USER_AGENT
from mailsafepro.errors import APIError, NetworkError, RateLimitError, ValidationError
from mailsafepro.interceptors import REQUEST_ID_HEADER
from tests.fakes import BASE_URL, RequestRecorder


@pytest.mark.asyncio
async def test_request_sends_default_headers_and_joins_base_path(make_http_client) -> None:
    recorder = RequestRecorder((200, {"ok": True}))
    client = make_http_client(recorder.transport())

    body = await client.post("/email/validate", json={"email": "user@example.com"})
    await client.aclose()

    request = recorder.requests[0]
    assert body == {"ok": True}
    assert request.url.path == "/v1/email/validate"
    assert request.headers["User-Agent"] == USER_AGENT
    assert request.headers["Accept"] == "application/json"
    assert request.headers[REQUEST_ID_HEADER].startswith("req_")
    assert json.loads(request.content) == {"email": "user@example.com"}


@pytest.mark.asyncio
async def test_server_error_is_retried(make_http_client, sleep) -> None:
    recorder = RequestRecorder((500, {"detail": "down"}), (200, {"ok": True}))
    client = make_http_client(recorder.transport())

    assert await client.get("/email/batch/job-1") == {"ok": True}
    assert len(recorder.requests) == 2
    assert len(sleep.calls) == 1


@pytest.mark.asyncio
async def test_client_error_is_not_retried(make_http_client, sleep) -> None:
    recorder = RequestRecorder((400, {"detail": "Invalid email"}))
    client = make_http_client(recorder.transport())

    with pytest.raises(ValidationError) as excinfo:
        await client.post("/email/validate", json={"email": "bad"})

    assert excinfo.value.status_code == 400
    assert excinfo.value.message == "Invalid email"
    assert len(recorder.requests) == 1
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after(make_http_client, sleep) -> None:
    def limited(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, request=request, headers={"retry-after": "0"})

    recorder = RequestRecorder(limited, (200, {"ok": True}))
    client = make_http_client(recorder.transport())

    assert await client.get("/email/batch/job-1") == {"ok": True}
    assert sleep.calls == [0.0]


@pytest.mark.asyncio
async def test_rate_limit_error_surfaces_after_retries(make_http_client) -> None:
    def limited(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, request=request, headers={"retry-after": "1"})

    recorder = RequestRecorder(limited)
    client = make_http_client(recorder.transport())

    with pytest.raises(RateLimitError) as excinfo:
        await client.get("/email/batch/job-1")

    assert excinfo.value.retry_after == 1
    assert len(recorder.requests) == 4


@pytest.mark.asyncio
async def test_transport_failures_become_network_errors(make_http_client, sleep) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    recorder = RequestRecorder(refuse)
    client = make_http_client(recorder.transport())

    with pytest.raises(NetworkError) as excinfo:
        await client.get("/email/batch/job-1")

    assert excinfo.value.transport_code == "ECONNREFUSED"
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
    assert len(recorder.requests) == 4
    assert len(sleep.calls) == 3


@pytest.mark.asyncio
async def test_retry_can_be_disabled(make_http_client) -> None:
    recorder = RequestRecorder((503, None))
    client = make_http_client(recorder.transport(), enable_retry=False)

    with pytest.raises(APIError) as excinfo:
        await client.get("/email/batch/job-1")

    assert excinfo.value.retryable is True
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_update_retry_config(make_http_client) -> None:
    recorder = RequestRecorder((500, None))
    client = make_http_client(recorder.transport())
    client.update_retry_config(max_retries=1)

    with pytest.raises(APIError):
        await client.get("/email/batch/job-1")

    assert client.retry_config.max_retries == 1
    assert len(recorder.requests) == 2


@pytest.mark.asyncio
async def test_empty_and_text_bodies(make_http_client) -> None:
    def plain(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, request=request, text="accepted")

    recorder = RequestRecorder((204, None), plain)
    client = make_http_client(recorder.transport())

    assert await client.post("/email/batch/job-1/cancel", json={}) is None
    assert await client.get("/email/batch/job-1") == "accepted"


@pytest.mark.asyncio
async def test_without_rate_limiter(make_http_client) -> None:
    recorder = RequestRecorder((200, {}))
    client = make_http_client(recorder.transport(), enable_rate_limit=False)

    await client.get("/email/batch/job-1")

    assert client.rate_limiter is None
    assert client.get_rate_limiter_stats() is None


@pytest.mark.asyncio
async def test_rate_limiter_stats(make_http_client) -> None:
    client = make_http_client(RequestRecorder((200, {})).transport())

    stats = client.get_rate_limiter_stats()

    assert stats["queue_size"] == 0
    assert stats["max_concurrent"] == 10


@pytest.mark.asyncio
async def test_default_transport_with_httpx_mock(httpx_mock, make_http_client) -> None:
    httpx_mock.add_response(
        url=f"{BASE_URL}/email/validate",
        method="POST",
        json={"email": "user@example.com", "valid": True},
    )
    client = make_http_client()

    body = await client.post("/email/validate", json={"email": "user@example.com"})
    await client.aclose()

    assert body["valid"] is True
