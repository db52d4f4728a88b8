"""Typed failures raised by the SDK.

Every error surfaced to callers is one of the classes below, so callers can
branch on ``isinstance`` or on ``error.kind`` without parsing messages.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Mapping


class ErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK = "network"
    TIMEOUT = "timeout"
    API = "api"
    CONFIGURATION = "configuration"


class MailSafeProError(Exception):
    kind: ClassVar[ErrorKind] = ErrorKind.API
    default_code: ClassVar[str] = "MAILSAFEPRO_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self._message = message
        self._code = code or self.default_code
        self._status_code = status_code
        self._details = MappingProxyType(dict(details or {}))
        self._timestamp = datetime.now(timezone.utc)

    @property
    def message(self) -> str:
        return self._message

    @property
    def code(self) -> str:
        return self._code

    @property
    def status_code(self) -> int | None:
        return self._status_code

    @property
    def details(self) -> Mapping[str, Any]:
        return self._details

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "details": dict(self.details),
            "timestamp": self.timestamp.isoformat(),
        }


class AuthenticationError(MailSafeProError):
    kind = ErrorKind.AUTHENTICATION
    default_code = "AUTHENTICATION_ERROR"

    def __init__(
        self,
        message: str = "Authentication failed",
        *,
        status_code: int | None = 401,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, details=details)


class RateLimitError(MailSafeProError):
    kind = ErrorKind.RATE_LIMIT
    default_code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        retry_after: int | None = None,
        limit: int | None = None,
        remaining: int | None = None,
        reset: int | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code=429, details=details)
        self._retry_after = retry_after
        self._limit = limit
        self._remaining = remaining
        self._reset = reset

    @property
    def retry_after(self) -> int | None:
        """Seconds the server asked us to wait before retrying."""
        return self._retry_after

    @property
    def limit(self) -> int | None:
        return self._limit

    @property
    def remaining(self) -> int | None:
        return self._remaining

    @property
    def reset(self) -> int | None:
        """Epoch seconds at which the server-side window resets."""
        return self._reset

    @property
    def reset_time(self) -> datetime | None:
        if self._reset is None:
            return None
        return datetime.fromtimestamp(self._reset, tz=timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        reset_time = self.reset_time
        return {
            **super().to_dict(),
            "retry_after": self.retry_after,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset": reset_time.isoformat() if reset_time else None,
        }


class ValidationError(MailSafeProError):
    kind = ErrorKind.VALIDATION
    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, details=details)


class QuotaExceededError(MailSafeProError):
    kind = ErrorKind.QUOTA_EXCEEDED
    default_code = "QUOTA_EXCEEDED"

    def __init__(
        self,
        message: str = "Quota exceeded",
        *,
        used: int | None = None,
        limit: int | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code=402, details=details)
        self._used = used
        self._limit = limit

    @property
    def used(self) -> int | None:
        return self._used

    @property
    def limit(self) -> int | None:
        return self._limit

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "used": self.used, "limit": self.limit}


class NetworkError(MailSafeProError):
    """No response was received from the server."""

    kind = ErrorKind.NETWORK
    default_code = "NETWORK_ERROR"
    is_timeout: ClassVar[bool] = False

    def __init__(
        self,
        message: str = "Network request failed",
        *,
        code: str | None = None,
        transport_code: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self._transport_code = transport_code

    @property
    def transport_code(self) -> str | None:
        """Low-level failure code such as ``ECONNRESET``."""
        return self._transport_code

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "transport_code": self.transport_code,
            "is_timeout": self.is_timeout,
        }


class TimeoutError(NetworkError):
    kind = ErrorKind.TIMEOUT
    default_code = "TIMEOUT_ERROR"
    is_timeout = True

    def __init__(
        self,
        message: str = "Request timeout",
        *,
        code: str | None = None,
        transport_code: str | None = "ETIMEDOUT",
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message, code=code, transport_code=transport_code, details=details
        )


class APIError(MailSafeProError):
    kind = ErrorKind.API
    default_code = "API_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, status_code=status_code, details=details)

    @property
    def retryable(self) -> bool:
        return bool(self.details.get("retryable", False))


class ConfigurationError(MailSafeProError):
    kind = ErrorKind.CONFIGURATION
    default_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message, details=details)
