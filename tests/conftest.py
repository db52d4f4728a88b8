import pytest

from mailsafepro.http import HttpClient
from mailsafepro.rate_limiter import RateLimitConfig
from mailsafepro.retry import RetryConfig
from tests.fakes import BASE_URL, FakeClock, FakeScheduler, SleepRecorder


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_000.0)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def make_http_client(sleep):
    def _build(transport=None, **kwargs) -> HttpClient:
        kwargs.setdefault("retry_config", RetryConfig(initial_delay_ms=10, max_delay_ms=100))
        kwargs.setdefault(
            "rate_limit_config",
            RateLimitConfig(max_requests_per_second=10_000, max_concurrent=10),
        )
        return HttpClient(BASE_URL, transport=transport, sleep=sleep, **kwargs)

    return _build
