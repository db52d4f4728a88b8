from __future__ import annotations

import asyncio
import inspect
import logging
import mimetypes
import os
from pathlib import Path
from typing import IO, Any, Callable, Union

from .batch import BatchPoller, ProgressCallback
from .constants import (
    BATCH_CANCEL_PATH,
    BATCH_STATUS_PATH,
    BATCH_UPLOAD_PATH,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_TIMEOUT_MS,
    LOGGER,
    MAX_FILE_SIZE,
    SUPPORTED_FILE_TYPES,
    UPLOAD_TIMEOUT,
    VALIDATE_BATCH_PATH,
    VALIDATE_SINGLE_PATH,
)
from .errors import MailSafeProError, ValidationError
from .http import HttpClient
from .models import BatchJobStatus, BatchValidationResult, EmailValidationResult, JobState
from .validation import (
    sanitize_email_for_logging,
    validate_batch_options,
    validate_email,
    validate_emails,
    validate_job_id,
    validate_timeout,
)

FileInput = Union[bytes, bytearray, str, "os.PathLike[str]", IO[bytes]]
DEFAULT_UPLOAD_FILENAME = "emails.csv"


def _options_body(check_smtp: bool | None, include_raw_dns: bool | None) -> dict[str, bool]:
    validate_batch_options({"check_smtp": check_smtp, "include_raw_dns": include_raw_dns})
    body: dict[str, bool] = {}
    if check_smtp is not None:
        body["checkSmtp"] = check_smtp
    if include_raw_dns is not None:
        body["includeRawDns"] = include_raw_dns
    return body


def _read_file(file: FileInput, filename: str | None) -> tuple[bytes, str]:
    if isinstance(file, (bytes, bytearray)):
        return bytes(file), filename or DEFAULT_UPLOAD_FILENAME
    if isinstance(file, (str, os.PathLike)):
        path = Path(file)
        if not path.is_file():
            raise ValidationError(f"File not found: {path}", details={"path": str(path)})
        return path.read_bytes(), filename or path.name
    if hasattr(file, "read"):
        content = file.read()
        if isinstance(content, str):
            content = content.encode("utf-8")
        name = getattr(file, "name", None)
        default_name = os.path.basename(name) if isinstance(name, str) else None
        return content, filename or default_name or DEFAULT_UPLOAD_FILENAME
    raise ValidationError("File must be bytes, a path or a binary file object")


class EmailValidationClient:
    def __init__(
        self,
        http_client: HttpClient,
        auth_headers: Callable[[], dict[str, str]],
        *,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._http = http_client
        self._auth_headers = auth_headers
        self._logger = logger or LOGGER
        self._poller = BatchPoller(self.get_batch_status, sleep=sleep, logger=self._logger)

    async def validate_email(
        self,
        email: str,
        *,
        check_smtp: bool | None = None,
        include_raw_dns: bool | None = None,
        timeout: float | None = None,
    ) -> EmailValidationResult:
        validate_email(email)
        body = {"email": email, **_options_body(check_smtp, include_raw_dns)}
        if timeout is not None:
            validate_timeout(timeout)

        masked = sanitize_email_for_logging(email)
        self._logger.info(
            "Validating email %s check_smtp=%s include_raw_dns=%s",
            masked,
            check_smtp,
            include_raw_dns,
        )
        try:
            payload = await self._http.post(
                VALIDATE_SINGLE_PATH,
                json=body,
                headers=self._auth_headers(),
                timeout=timeout,
            )
            result = EmailValidationResult.from_payload(payload)
        except MailSafeProError as error:
            self._logger.error("Email validation failed for %s: %s", masked, error)
            raise

        self._logger.debug(
            "Email validation completed for %s valid=%s risk_score=%s",
            masked,
            result.valid,
            result.risk_score,
        )
        return result

    async def batch_validate_emails(
        self,
        emails: list[str],
        *,
        check_smtp: bool | None = None,
        include_raw_dns: bool | None = None,
    ) -> BatchValidationResult:
        validate_emails(emails)
        body = {"emails": list(emails), **_options_body(check_smtp, include_raw_dns)}

        self._logger.info("Validating batch of %s emails", len(emails))
        try:
            payload = await self._http.post(
                VALIDATE_BATCH_PATH, json=body, headers=self._auth_headers()
            )
            result = BatchValidationResult.from_payload(payload)
        except MailSafeProError as error:
            self._logger.error("Batch validation of %s emails failed: %s", len(emails), error)
            raise

        self._logger.info(
            "Batch validation completed valid=%s invalid=%s",
            result.valid_count,
            result.invalid_count,
        )
        return result

    async def upload_file_batch(
        self,
        file: FileInput,
        *,
        filename: str | None = None,
        content_type: str | None = None,
        check_smtp: bool | None = None,
        include_raw_dns: bool | None = None,
    ) -> BatchJobStatus:
        if file is None:
            raise ValidationError("File is required for batch upload")
        options = _options_body(check_smtp, include_raw_dns)

        content, name = _read_file(file, filename)
        if not content:
            raise ValidationError("File is empty", details={"filename": name})
        if len(content) > MAX_FILE_SIZE:
            raise ValidationError(
                f"File too large: {len(content)} bytes (max {MAX_FILE_SIZE} bytes)",
                details={"filename": name, "size": len(content)},
            )

        mime_type = content_type or mimetypes.guess_type(name)[0] or "text/csv"
        if mime_type not in SUPPORTED_FILE_TYPES:
            raise ValidationError(
                f"Unsupported file type: {mime_type}",
                details={"filename": name, "supported": sorted(SUPPORTED_FILE_TYPES)},
            )

        form = {key: "true" if value else "false" for key, value in options.items()}
        self._logger.info(
            "Uploading file %s for batch validation size=%s type=%s",
            name,
            len(content),
            mime_type,
        )
        try:
            payload = await self._http.post(
                BATCH_UPLOAD_PATH,
                files={"file": (name, content, mime_type)},
                data=form,
                headers=self._auth_headers(),
                timeout=UPLOAD_TIMEOUT,
            )
            status = BatchJobStatus.from_payload(payload)
        except MailSafeProError as error:
            self._logger.error("File upload for %s failed: %s", name, error)
            raise

        self._logger.info("File uploaded, batch job %s is %s", status.job_id, status.status.value)
        return status

    async def get_batch_status(self, job_id: str) -> BatchJobStatus:
        validate_job_id(job_id)
        payload = await self._http.get(
            BATCH_STATUS_PATH.format(job_id=job_id), headers=self._auth_headers()
        )
        status = BatchJobStatus.from_payload(payload)
        self._logger.debug(
            "Batch job %s status=%s progress=%s", job_id, status.status.value, status.progress
        )
        return status

    async def get_batch_results(self, job_id: str) -> BatchValidationResult:
        status = await self.get_batch_status(job_id)
        if status.status is not JobState.COMPLETED:
            raise ValidationError(
                f"Batch job not completed yet. Current status: {status.status.value}",
                details={"job_id": job_id, "status": status.status.value},
            )
        if status.results is None:
            raise ValidationError("Batch results not available", details={"job_id": job_id})
        return status.results

    async def wait_for_batch_completion(
        self,
        job_id: str,
        *,
        poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS,
        timeout_ms: float = DEFAULT_POLL_TIMEOUT_MS,
        on_progress: ProgressCallback | None = None,
    ) -> BatchValidationResult:
        validate_job_id(job_id)
        return await self._poller.wait_for_completion(
            job_id,
            poll_interval_ms=poll_interval_ms,
            timeout_ms=timeout_ms,
            on_progress=on_progress,
        )

    async def cancel_batch(self, job_id: str) -> None:
        validate_job_id(job_id)
        self._logger.info("Cancelling batch job %s", job_id)
        await self._http.post(
            BATCH_CANCEL_PATH.format(job_id=job_id), json={}, headers=self._auth_headers()
        )
        self._logger.info("Batch job %s cancelled", job_id)

    async def validate_emails_with_retry(
        self,
        emails: list[str],
        *,
        check_smtp: bool | None = None,
        include_raw_dns: bool | None = None,
        max_retries: int = 3,
        on_progress: Callable[[int, int], Any] | None = None,
    ) -> list[EmailValidationResult]:
        """Validate emails one at a time, retrying failures in later passes.

        Each email is attempted at most ``max_retries`` times in total. Emails
        that never succeed are logged and left out of the returned list.
        """
        validate_emails(emails)
        max_attempts = max(1, max_retries)
        results: list[EmailValidationResult] = []
        attempts: dict[str, int] = {}
        pending = list(emails)

        self._logger.info(
            "Validating %s emails with up to %s attempts each", len(emails), max_attempts
        )
        first_pass = True
        while pending:
            failed: list[str] = []
            for index, email in enumerate(pending):
                attempts[email] = attempts.get(email, 0) + 1
                try:
                    results.append(
                        await self.validate_email(
                            email, check_smtp=check_smtp, include_raw_dns=include_raw_dns
                        )
                    )
                except MailSafeProError:
                    failed.append(email)

                if first_pass:
                    await self._report_progress(on_progress, index + 1, len(emails))

            first_pass = False
            pending = [email for email in failed if attempts[email] < max_attempts]
            if pending:
                self._logger.info("Retrying %s failed emails", len(pending))

        given_up = len(emails) - len(results)
        if given_up:
            self._logger.warning(
                "%s emails failed after %s attempts", given_up, max_attempts
            )
        return results

    async def _report_progress(
        self, on_progress: Callable[[int, int], Any] | None, completed: int, total: int
    ) -> None:
        if on_progress is None:
            return
        try:
            result = on_progress(completed, total)
            if inspect.isawaitable(result):
                await result
        except Exception as error:
            self._logger.warning("Progress callback failed: %s", error)
