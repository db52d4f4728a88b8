"""Client-side input checks run before any request is sent."""

from __future__ import annotations

import re
from typing import Any

from pydantic import AnyHttpUrl
from pydantic import ValidationError as PydanticValidationError

from .constants import (
    MAX_BATCH_SIZE,
    MAX_DOMAIN_LABEL_LENGTH,
    MAX_DOMAIN_LENGTH,
    MAX_EMAIL_LENGTH,
    MAX_LOCAL_PART_LENGTH,
    MAX_REQUEST_TIMEOUT,
    MIN_API_KEY_LENGTH,
    MIN_PASSWORD_LENGTH,
)
from .errors import ConfigurationError, ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DOMAIN_LABEL_RE = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")
API_KEY_RE = re.compile(r"^[A-Za-z0-9_\-]+$")
JOB_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")


def validate_email(email: Any) -> None:
    if not isinstance(email, str) or not email:
        raise ValidationError("Email is required and must be a string")

    trimmed = email.strip()
    if not trimmed:
        raise ValidationError("Email cannot be empty")
    if email != trimmed:
        raise ValidationError(
            "Email contains leading or trailing whitespace",
            details={"provided": email, "expected": trimmed},
        )
    if len(email) > MAX_EMAIL_LENGTH:
        raise ValidationError(
            f"Email too long: {len(email)} characters (max {MAX_EMAIL_LENGTH})"
        )
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format", details={"email": email})

    local_part, _, domain = email.rpartition("@")
    if len(local_part) > MAX_LOCAL_PART_LENGTH:
        raise ValidationError(
            f"Local part too long: {len(local_part)} characters (max {MAX_LOCAL_PART_LENGTH})"
        )
    if local_part.startswith(".") or local_part.endswith("."):
        raise ValidationError("Local part cannot start or end with a dot")
    if ".." in local_part:
        raise ValidationError("Local part cannot contain consecutive dots")

    validate_domain(domain)


def validate_emails(emails: Any) -> None:
    if not isinstance(emails, (list, tuple)):
        raise ValidationError("Emails must be a list")
    if not emails:
        raise ValidationError("Emails list cannot be empty")
    if len(emails) > MAX_BATCH_SIZE:
        raise ValidationError(
            f"Batch size too large: {len(emails)} emails (max {MAX_BATCH_SIZE})"
        )

    for index, email in enumerate(emails):
        try:
            validate_email(email)
        except ValidationError as error:
            raise ValidationError(
                f"Invalid email at index {index}: {error.message}",
                details={"index": index, "email": email},
            ) from error

    unique = {email.lower() for email in emails}
    if len(unique) != len(emails):
        raise ValidationError(
            "Duplicate emails found in batch",
            details={"total": len(emails), "unique": len(unique)},
        )


def validate_domain(domain: Any) -> None:
    if not isinstance(domain, str) or not domain:
        raise ValidationError("Domain is required and must be a string")

    normalized = domain.strip().lower()
    if not normalized:
        raise ValidationError("Domain cannot be empty")
    if len(normalized) > MAX_DOMAIN_LENGTH:
        raise ValidationError(
            f"Domain too long: {len(normalized)} characters (max {MAX_DOMAIN_LENGTH})"
        )

    labels = normalized.split(".")
    if len(labels) < 2:
        raise ValidationError("Domain must have at least two labels")

    for index, label in enumerate(labels):
        if not label:
            raise ValidationError(f"Domain label {index} is empty")
        if len(label) > MAX_DOMAIN_LABEL_LENGTH:
            raise ValidationError(
                f'Domain label too long: "{label}" ({len(label)} characters, '
                f"max {MAX_DOMAIN_LABEL_LENGTH})"
            )
        if not DOMAIN_LABEL_RE.match(label):
            raise ValidationError(
                f'Invalid domain label: "{label}" (must start/end with alphanumeric)'
            )

    tld = labels[-1]
    if not tld.isascii() or not tld.isalpha():
        raise ValidationError(f'Invalid TLD: "{tld}" (must be alphabetic only)')


def validate_api_key(api_key: Any) -> None:
    if not isinstance(api_key, str) or not api_key:
        raise ValidationError("API Key is required and must be a string")
    if not api_key.strip():
        raise ValidationError("API Key cannot be empty")
    if api_key != api_key.strip():
        raise ValidationError("API Key contains leading or trailing whitespace")
    if len(api_key) < MIN_API_KEY_LENGTH:
        raise ValidationError(
            "API Key appears to be invalid (too short, minimum "
            f"{MIN_API_KEY_LENGTH} characters)"
        )
    if not API_KEY_RE.match(api_key):
        raise ValidationError(
            "API Key contains invalid characters (only alphanumeric, underscore, "
            "and hyphen allowed)"
        )


def validate_password(password: Any) -> None:
    if not isinstance(password, str) or not password:
        raise ValidationError("Password is required and must be a string")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def validate_base_url(base_url: Any) -> None:
    if not isinstance(base_url, str) or not base_url.strip():
        raise ConfigurationError("Base URL is required and must be a non-empty string")

    try:
        url = AnyHttpUrl(base_url.strip())
    except PydanticValidationError as error:
        raise ConfigurationError(
            f"Invalid base URL: {base_url}",
            details={"base_url": base_url, "errors": [e["msg"] for e in error.errors()]},
        ) from error

    if url.scheme not in {"http", "https"} or not url.host:
        raise ConfigurationError(
            f"Invalid base URL: {base_url} (only http and https are allowed)",
            details={"base_url": base_url},
        )


def validate_batch_options(options: Any) -> None:
    if not isinstance(options, dict):
        raise ValidationError("Batch options must be a mapping")
    for key in ("check_smtp", "include_raw_dns"):
        value = options.get(key)
        if value is not None and not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean")


def validate_timeout(timeout: Any) -> None:
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ValidationError("Timeout must be a number of seconds")
    if timeout <= 0:
        raise ValidationError("Timeout must be positive")
    if timeout > MAX_REQUEST_TIMEOUT:
        raise ValidationError(
            f"Timeout too large: {timeout}s (max {MAX_REQUEST_TIMEOUT:g}s)"
        )


def validate_job_id(job_id: Any) -> None:
    if not isinstance(job_id, str) or not job_id:
        raise ValidationError("Job ID is required and must be a string")
    if not JOB_ID_RE.match(job_id):
        raise ValidationError("Invalid job ID format", details={"job_id": job_id})


def sanitize_email_for_logging(email: str) -> str:
    local_part, at, domain = email.rpartition("@")
    if not at:
        return "***"
    visible = local_part[:2] if len(local_part) > 2 else local_part[:1]
    return f"{visible}***@{domain}"
