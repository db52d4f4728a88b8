from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import APIError


def _malformed(what: str, missing: str, payload: Any) -> APIError:
    return APIError(
        f"Malformed {what} response: missing {missing}.",
        code="MALFORMED_RESPONSE",
        details={"payload": payload},
    )


def _require_mapping(what: str, payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise APIError(
            f"Malformed {what} response: expected a JSON object.",
            code="MALFORMED_RESPONSE",
            details={"payload": payload},
        )
    return payload


class JobState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


_RESULT_FIELDS = {
    "email": "email",
    "valid": "valid",
    "reputation": "reputation",
    "riskScore": "risk_score",
    "provider": "provider",
    "mxServer": "mx_server",
    "mailboxExists": "mailbox_exists",
    "disposable": "disposable",
    "freeProvider": "free_provider",
    "roleAccount": "role_account",
    "hasCatchAll": "has_catch_all",
    "detail": "detail",
    "reason": "reason",
    "suggestions": "suggestions",
    "rawDns": "raw_dns",
    "validationTime": "validation_time",
}


@dataclass
class EmailValidationResult:
    email: str
    valid: bool
    reputation: float | None = None
    risk_score: float | None = None
    provider: str | None = None
    mx_server: str | None = None
    mailbox_exists: bool | None = None
    disposable: bool | None = None
    free_provider: bool | None = None
    role_account: bool | None = None
    has_catch_all: bool | None = None
    detail: str | None = None
    reason: str | None = None
    suggestions: list[str] = field(default_factory=list)
    raw_dns: dict[str, Any] | None = None
    validation_time: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "EmailValidationResult":
        payload = _require_mapping("email validation", payload)
        email = payload.get("email")
        valid = payload.get("valid")
        if not isinstance(email, str) or not email:
            raise _malformed("email validation", "email", payload)
        if not isinstance(valid, bool):
            raise _malformed("email validation", "valid", payload)

        known = {attr: payload[key] for key, attr in _RESULT_FIELDS.items() if key in payload}
        known["suggestions"] = list(known.get("suggestions") or [])
        extra = {key: value for key, value in payload.items() if key not in _RESULT_FIELDS}
        return cls(**known, extra=extra)


@dataclass
class BatchValidationResult:
    results: list[EmailValidationResult]
    valid_count: int
    invalid_count: int
    processing_time: float | None = None
    summary: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "BatchValidationResult":
        payload = _require_mapping("batch validation", payload)
        raw_results = payload.get("results")
        if not isinstance(raw_results, list):
            raise _malformed("batch validation", "results", payload)

        results = [EmailValidationResult.from_payload(item) for item in raw_results]
        valid_count = payload.get("validCount")
        invalid_count = payload.get("invalidCount")
        return cls(
            results=results,
            valid_count=(
                valid_count
                if isinstance(valid_count, int)
                else sum(1 for result in results if result.valid)
            ),
            invalid_count=(
                invalid_count
                if isinstance(invalid_count, int)
                else sum(1 for result in results if not result.valid)
            ),
            processing_time=payload.get("processingTime"),
            summary=dict(payload.get("summary") or {}),
        )


@dataclass
class BatchJobStatus:
    job_id: str
    status: JobState
    progress: float | None = None
    total_emails: int | None = None
    processed_emails: int | None = None
    valid_emails: int | None = None
    invalid_emails: int | None = None
    started_at: str | None = None
    completed_at: str | None = None
    estimated_time_remaining: float | None = None
    results: BatchValidationResult | None = None
    error: str | None = None
    download_url: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "BatchJobStatus":
        payload = _require_mapping("batch status", payload)
        job_id = payload.get("jobId")
        if not isinstance(job_id, str) or not job_id:
            raise _malformed("batch status", "jobId", payload)
        try:
            status = JobState(payload.get("status"))
        except ValueError as error:
            raise APIError(
                f"Unknown batch job status: {payload.get('status')!r}",
                code="MALFORMED_RESPONSE",
                details={"payload": payload},
            ) from error

        raw_results = payload.get("results")
        return cls(
            job_id=job_id,
            status=status,
            progress=payload.get("progress"),
            total_emails=payload.get("totalEmails"),
            processed_emails=payload.get("processedEmails"),
            valid_emails=payload.get("validEmails"),
            invalid_emails=payload.get("invalidEmails"),
            started_at=payload.get("startedAt"),
            completed_at=payload.get("completedAt"),
            estimated_time_remaining=payload.get("estimatedTimeRemaining"),
            results=(
                BatchValidationResult.from_payload(raw_results)
                if raw_results is not None
                else None
            ),
            error=payload.get("error"),
            download_url=payload.get("downloadUrl"),
        )
