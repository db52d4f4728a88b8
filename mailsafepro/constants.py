from __future__ import annotations

import logging

LOGGER = logging.getLogger("mailsafepro")

SDK_VERSION = "1.0.0"
SDK_NAME = "mailsafepro-sdk"
USER_AGENT = f"{SDK_NAME}/{SDK_VERSION}"

DEFAULT_BASE_URL = "https://api.mailsafepro.com/v1"

# HTTP timeouts are in seconds, everything else in this module is in ms
# unless the name says otherwise.
DEFAULT_TIMEOUT = 30.0
UPLOAD_TIMEOUT = 120.0
MAX_REQUEST_TIMEOUT = 600.0

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_MS = 500
DEFAULT_MAX_DELAY_MS = 30_000
DEFAULT_BACKOFF_MULTIPLIER = 2.0

RETRY_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
RETRY_ERROR_CODES = frozenset(
    {
        "ECONNRESET",
        "ETIMEDOUT",
        "ECONNREFUSED",
        "ENETUNREACH",
        "ENOTFOUND",
        "EAI_AGAIN",
    }
)

DEFAULT_MAX_REQUESTS_PER_SECOND = 10.0
DEFAULT_MAX_CONCURRENT = 5

TOKEN_REFRESH_MARGIN_SECONDS = 60
MIN_TOKEN_LIFETIME_SECONDS = 120

DEFAULT_POLL_INTERVAL_MS = 2_000
DEFAULT_POLL_TIMEOUT_MS = 300_000

MAX_BATCH_SIZE = 1000
MAX_FILE_SIZE = 10 * 1024 * 1024
SUPPORTED_FILE_TYPES = {
    "text/csv",
    "text/plain",
    "application/json",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

MAX_EMAIL_LENGTH = 320
MAX_LOCAL_PART_LENGTH = 64
MAX_DOMAIN_LENGTH = 253
MAX_DOMAIN_LABEL_LENGTH = 63
MIN_API_KEY_LENGTH = 20
MIN_PASSWORD_LENGTH = 8

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/json",
    "X-SDK-Version": SDK_VERSION,
}

SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
    "x-api-key",
    "api-key",
    "apikey",
    "cookie",
    "set-cookie",
}
REDACTED = "***REDACTED***"

# Remaining capacity below this share of the limit triggers a warning.
RATE_LIMIT_WARNING_RATIO = 0.2

LOGIN_PATH = "/auth/login"
REGISTER_PATH = "/auth/register"
LOGOUT_PATH = "/auth/logout"
REFRESH_PATH = "/auth/refresh"
VALIDATE_SINGLE_PATH = "/email/validate"
VALIDATE_BATCH_PATH = "/email/batch"
BATCH_UPLOAD_PATH = "/email/batch/upload"
BATCH_STATUS_PATH = "/email/batch/{job_id}"
BATCH_CANCEL_PATH = "/email/batch/{job_id}/cancel"
