import io
import json

import httpx
import pytest

from mailsafepro.constants import MAX_FILE_SIZE
from mailsafepro.emails import EmailValidationClient
from mailsafepro.errors import APIError, ValidationError
from mailsafepro.models import JobState
from tests.fakes import API_KEY, RequestRecorder, result_payload

AUTH = {"X-API-Key": API_KEY}


@pytest.fixture
def make_client(make_http_client, sleep):
    def _build(recorder: RequestRecorder) -> EmailValidationClient:
        http_client = make_http_client(recorder.transport())
        return EmailValidationClient(http_client, lambda: dict(AUTH), sleep=sleep)

    return _build


@pytest.mark.asyncio
async def test_validate_email_sends_options_and_auth(make_client) -> None:
    recorder = RequestRecorder((200, result_payload(disposable=False)))
    client = make_client(recorder)

    result = await client.validate_email("user@example.com", check_smtp=True)

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/v1/email/validate"
    assert request.headers["X-API-Key"] == API_KEY
    assert json.loads(request.content) == {"email": "user@example.com", "checkSmtp": True}
    assert result.valid is True
    assert result.disposable is False


@pytest.mark.asyncio
async def test_validate_email_rejects_bad_input_locally(make_client) -> None:
    recorder = RequestRecorder((200, result_payload()))
    client = make_client(recorder)

    with pytest.raises(ValidationError):
        await client.validate_email("broken")
    with pytest.raises(ValidationError):
        await client.validate_email("user@example.com", include_raw_dns="yes")
    with pytest.raises(ValidationError):
        await client.validate_email("user@example.com", timeout=0)

    assert recorder.requests == []


@pytest.mark.asyncio
async def test_batch_validate_emails(make_client) -> None:
    recorder = RequestRecorder(
        (
            200,
            {
                "results": [result_payload("a@example.com"), result_payload("b@example.com", False)],
                "validCount": 1,
                "invalidCount": 1,
                "processingTime": 0.4,
            },
        )
    )
    client = make_client(recorder)

    result = await client.batch_validate_emails(
        ["a@example.com", "b@example.com"], include_raw_dns=True
    )

    assert recorder.requests[0].url.path == "/v1/email/batch"
    assert json.loads(recorder.requests[0].content) == {
        "emails": ["a@example.com", "b@example.com"],
        "includeRawDns": True,
    }
    assert result.valid_count == 1
    assert result.invalid_count == 1
    assert result.processing_time == 0.4


@pytest.mark.asyncio
async def test_upload_file_batch_sends_multipart(make_client) -> None:
    recorder = RequestRecorder((202, {"jobId": "job-1", "status": "pending", "progress": 0}))
    client = make_client(recorder)

    status = await client.upload_file_batch(
        b"email\nuser@example.com\n", filename="list.csv", check_smtp=False
    )

    request = recorder.requests[0]
    assert request.url.path == "/v1/email/batch/upload"
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert request.headers["X-API-Key"] == API_KEY
    body = request.content
    assert b'filename="list.csv"' in body
    assert b"text/csv" in body
    assert b'name="checkSmtp"' in body
    assert b"false" in body
    assert status.job_id == "job-1"
    assert status.status is JobState.PENDING


@pytest.mark.asyncio
async def test_upload_reads_paths_and_file_objects(make_client, tmp_path) -> None:
    recorder = RequestRecorder((202, {"jobId": "job-2", "status": "pending"}))
    client = make_client(recorder)
    path = tmp_path / "emails.txt"
    path.write_text("user@example.com\n", encoding="utf-8")

    await client.upload_file_batch(path)
    await client.upload_file_batch(io.BytesIO(b"user@example.com\n"), content_type="text/plain")

    assert b'filename="emails.txt"' in recorder.requests[0].content
    assert b"text/plain" in recorder.requests[0].content
    assert b'filename="emails.csv"' in recorder.requests[1].content


@pytest.mark.asyncio
async def test_upload_rejects_invalid_files(make_client, tmp_path) -> None:
    recorder = RequestRecorder((202, {"jobId": "job-1", "status": "pending"}))
    client = make_client(recorder)

    with pytest.raises(ValidationError, match="too large"):
        await client.upload_file_batch(b"x" * (MAX_FILE_SIZE + 1))
    with pytest.raises(ValidationError, match="empty"):
        await client.upload_file_batch(b"")
    with pytest.raises(ValidationError, match="Unsupported file type"):
        await client.upload_file_batch(b"%PDF", filename="emails.pdf")
    with pytest.raises(ValidationError, match="not found"):
        await client.upload_file_batch(tmp_path / "missing.csv")

    assert recorder.requests == []


@pytest.mark.asyncio
async def test_batch_status_and_cancel_paths(make_client) -> None:
    recorder = RequestRecorder(
        (200, {"jobId": "job-1", "status": "processing", "progress": 40}),
        (200, None),
    )
    client = make_client(recorder)

    status = await client.get_batch_status("job-1")
    await client.cancel_batch("job-1")

    assert status.progress == 40
    assert recorder.requests[0].method == "GET"
    assert recorder.requests[0].url.path == "/v1/email/batch/job-1"
    assert recorder.requests[1].method == "POST"
    assert recorder.requests[1].url.path == "/v1/email/batch/job-1/cancel"


@pytest.mark.asyncio
async def test_invalid_job_id_is_rejected(make_client) -> None:
    recorder = RequestRecorder((200, {}))
    client = make_client(recorder)

    with pytest.raises(ValidationError):
        await client.get_batch_status("../admin")
    with pytest.raises(ValidationError):
        await client.cancel_batch("")

    assert recorder.requests == []


@pytest.mark.asyncio
async def test_get_batch_results_requires_completion(make_client) -> None:
    recorder = RequestRecorder(
        (200, {"jobId": "job-1", "status": "processing", "progress": 40}),
        (
            200,
            {
                "jobId": "job-1",
                "status": "completed",
                "progress": 100,
                "results": {"results": [result_payload()]},
            },
        ),
    )
    client = make_client(recorder)

    with pytest.raises(ValidationError, match="not completed"):
        await client.get_batch_results("job-1")

    results = await client.get_batch_results("job-1")
    assert results.valid_count == 1


@pytest.mark.asyncio
async def test_wait_for_batch_completion_polls(make_client, sleep) -> None:
    recorder = RequestRecorder(
        (200, {"jobId": "job-1", "status": "processing", "progress": 50}),
        (
            200,
            {
                "jobId": "job-1",
                "status": "completed",
                "progress": 100,
                "results": {"results": [result_payload()], "validCount": 1, "invalidCount": 0},
            },
        ),
    )
    client = make_client(recorder)
    progress: list[float] = []

    result = await client.wait_for_batch_completion(
        "job-1", poll_interval_ms=250, on_progress=lambda status: progress.append(status.progress)
    )

    assert progress == [50, 100]
    assert sleep.calls == [0.25]
    assert result.valid_count == 1


@pytest.mark.asyncio
async def test_malformed_server_payload(make_client) -> None:
    recorder = RequestRecorder((200, {"unexpected": True}))
    client = make_client(recorder)

    with pytest.raises(APIError) as excinfo:
        await client.validate_email("user@example.com")

    assert excinfo.value.code == "MALFORMED_RESPONSE"


@pytest.mark.asyncio
async def test_validate_emails_with_retry_retries_failures(make_client) -> None:
    attempts: dict[str, int] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        email = json.loads(request.content)["email"]
        attempts[email] = attempts.get(email, 0) + 1
        if email == "flaky@example.com" and attempts[email] == 1:
            return httpx.Response(400, request=request, json={"detail": "try again"})
        if email == "dead@example.com":
            return httpx.Response(422, request=request, json={"detail": "undeliverable"})
        return httpx.Response(200, request=request, json=result_payload(email))

    client = make_client(RequestRecorder(handler))
    progress: list[tuple[int, int]] = []

    results = await client.validate_emails_with_retry(
        ["ok@example.com", "flaky@example.com", "dead@example.com"],
        max_retries=3,
        on_progress=lambda done, total: progress.append((done, total)),
    )

    assert [result.email for result in results] == ["ok@example.com", "flaky@example.com"]
    assert attempts == {"ok@example.com": 1, "flaky@example.com": 2, "dead@example.com": 3}
    assert progress == [(1, 3), (2, 3), (3, 3)]
