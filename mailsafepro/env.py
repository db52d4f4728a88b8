from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_BASE_URL,
    DEFAULT_INITIAL_DELAY_MS,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_REQUESTS_PER_SECOND,
    DEFAULT_MAX_RETRIES,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_TIMEOUT_MS,
    DEFAULT_TIMEOUT,
    LOGGER,
    MIN_TOKEN_LIFETIME_SECONDS,
    RETRY_ERROR_CODES,
    RETRY_STATUS_CODES,
    TOKEN_REFRESH_MARGIN_SECONDS,
)
from .errors import ConfigurationError
from .rate_limiter import RateLimitConfig
from .retry import RetryConfig

ENV_PREFIX = "MAILSAFEPRO_"


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(key: str) -> set[str]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer value.", details={key: raw})


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a numeric value.", details={key: raw})


def _get_env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return is_truthy(raw)


def _get_env_status_codes(key: str, default: frozenset[int]) -> frozenset[int]:
    values = parse_csv_env(key)
    if not values:
        return default
    try:
        return frozenset(int(value) for value in values)
    except ValueError:
        raise ConfigurationError(
            f"{key} must be a comma-separated list of integers.",
            details={key: os.getenv(key)},
        )


def load_env(path: str | Path | None = None) -> bool:
    env_path = Path(path) if path is not None else Path.cwd() / ".env"
    if not env_path.exists():
        return False
    return load_dotenv(env_path, override=False)


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv(f"{ENV_PREFIX}DEBUG"))
    if debug_enabled:
        logging.basicConfig(level=logging.DEBUG)
        LOGGER.setLevel(logging.DEBUG)
    return debug_enabled


@dataclass
class ClientSettings:
    base_url: str = DEFAULT_BASE_URL
    api_key: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    auto_refresh: bool = True
    enable_retry: bool = True
    enable_rate_limit: bool = True

    max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND
    max_concurrent: int = DEFAULT_MAX_CONCURRENT

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay_ms: float = DEFAULT_INITIAL_DELAY_MS
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    retryable_status_codes: frozenset[int] = field(default_factory=lambda: RETRY_STATUS_CODES)
    retryable_error_codes: frozenset[str] = field(default_factory=lambda: RETRY_ERROR_CODES)

    refresh_margin_seconds: float = TOKEN_REFRESH_MARGIN_SECONDS
    min_token_lifetime_seconds: float = MIN_TOKEN_LIFETIME_SECONDS

    poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS
    poll_timeout_ms: float = DEFAULT_POLL_TIMEOUT_MS

    @classmethod
    def from_env(cls) -> "ClientSettings":
        p = ENV_PREFIX
        defaults = cls()
        return cls(
            base_url=os.getenv(f"{p}BASE_URL", "").strip() or defaults.base_url,
            api_key=os.getenv(f"{p}API_KEY", "").strip() or None,
            timeout=_get_env_float(f"{p}TIMEOUT", defaults.timeout),
            auto_refresh=_get_env_bool(f"{p}AUTO_REFRESH", defaults.auto_refresh),
            enable_retry=_get_env_bool(f"{p}ENABLE_RETRY", defaults.enable_retry),
            enable_rate_limit=_get_env_bool(
                f"{p}ENABLE_RATE_LIMIT", defaults.enable_rate_limit
            ),
            max_requests_per_second=_get_env_float(
                f"{p}MAX_REQUESTS_PER_SECOND", defaults.max_requests_per_second
            ),
            max_concurrent=_get_env_int(f"{p}MAX_CONCURRENT", defaults.max_concurrent),
            max_retries=_get_env_int(f"{p}MAX_RETRIES", defaults.max_retries),
            initial_delay_ms=_get_env_float(
                f"{p}INITIAL_DELAY_MS", defaults.initial_delay_ms
            ),
            max_delay_ms=_get_env_float(f"{p}MAX_DELAY_MS", defaults.max_delay_ms),
            backoff_multiplier=_get_env_float(
                f"{p}BACKOFF_MULTIPLIER", defaults.backoff_multiplier
            ),
            retryable_status_codes=_get_env_status_codes(
                f"{p}RETRYABLE_STATUS_CODES", defaults.retryable_status_codes
            ),
            retryable_error_codes=frozenset(
                parse_csv_env(f"{p}RETRYABLE_ERROR_CODES")
                or defaults.retryable_error_codes
            ),
            refresh_margin_seconds=_get_env_float(
                f"{p}REFRESH_MARGIN_SECONDS", defaults.refresh_margin_seconds
            ),
            min_token_lifetime_seconds=_get_env_float(
                f"{p}MIN_TOKEN_LIFETIME_SECONDS", defaults.min_token_lifetime_seconds
            ),
            poll_interval_ms=_get_env_float(
                f"{p}POLL_INTERVAL_MS", defaults.poll_interval_ms
            ),
            poll_timeout_ms=_get_env_float(f"{p}POLL_TIMEOUT_MS", defaults.poll_timeout_ms),
        )

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.max_retries,
            initial_delay_ms=self.initial_delay_ms,
            max_delay_ms=self.max_delay_ms,
            backoff_multiplier=self.backoff_multiplier,
            retryable_status_codes=frozenset(self.retryable_status_codes),
            retryable_error_codes=frozenset(self.retryable_error_codes),
        )

    def rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            max_requests_per_second=self.max_requests_per_second,
            max_concurrent=self.max_concurrent,
        )
