from .auth import SessionManager, UserSession
from .batch import BatchPoller
from .client import MailSafeProClient
from .constants import SDK_VERSION
from .env import ClientSettings, load_env, setup_logging
from .errors import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    ErrorKind,
    MailSafeProError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    TimeoutError,
    ValidationError,
)
from .http import HttpClient
from .interceptors import TransportInterceptor, classify_status, sanitize_headers
from .models import BatchJobStatus, BatchValidationResult, EmailValidationResult, JobState
from .rate_limiter import RateLimitConfig, RateLimiter
from .retry import RetryConfig, RetryPolicy, execute_with_retry

__version__ = SDK_VERSION

__all__ = [
    "APIError",
    "AuthenticationError",
    "BatchJobStatus",
    "BatchPoller",
    "BatchValidationResult",
    "ClientSettings",
    "ConfigurationError",
    "EmailValidationResult",
    "ErrorKind",
    "HttpClient",
    "JobState",
    "MailSafeProClient",
    "MailSafeProError",
    "NetworkError",
    "QuotaExceededError",
    "RateLimitConfig",
    "RateLimitError",
    "RateLimiter",
    "RetryConfig",
    "RetryPolicy",
    "SessionManager",
    "TimeoutError",
    "TransportInterceptor",
    "UserSession",
    "ValidationError",
    "__version__",
    "classify_status",
    "execute_with_retry",
    "load_env",
    "sanitize_headers",
    "setup_logging",
]
