"""Unit tests for the per-address rate limiter."""

import pytest

from errors import RateLimitExceeded
from rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestRateLimiter:
    """Tests for the fixed window."""

    def test_admits_up_to_max(self, clock):
        limiter = RateLimiter(max_requests=3, window_seconds=60, clock=clock)
        for _ in range(3):
            limiter.admit("ADDR")
        assert limiter.bucket("ADDR").count == 3

    def test_rejects_after_max(self, clock):
        limiter = RateLimiter(max_requests=2, window_seconds=60, clock=clock)
        limiter.admit("ADDR")
        limiter.admit("ADDR")
        with pytest.raises(RateLimitExceeded) as exc_info:
            limiter.admit("ADDR")
        assert exc_info.value.status_code == 429
        assert exc_info.value.code == "rate_limited"

    def test_window_resets_on_first_request_after_expiry(self, clock):
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
        limiter.admit("ADDR")
        clock.now += 60
        limiter.admit("ADDR")
        bucket = limiter.bucket("ADDR")
        assert bucket.count == 1
        assert bucket.reset_at == clock.now + 60

    def test_window_is_not_sliding(self, clock):
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
        limiter.admit("ADDR")
        clock.now += 59.9
        with pytest.raises(RateLimitExceeded):
            limiter.admit("ADDR")

    def test_addresses_are_independent(self, clock):
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
        limiter.admit("A")
        limiter.admit("B")
        assert limiter.bucket("A").count == 1
        assert limiter.bucket("B").count == 1

    def test_bucket_returns_a_copy(self, clock):
        limiter = RateLimiter(max_requests=5, window_seconds=60, clock=clock)
        limiter.admit("A")
        limiter.bucket("A").count = 99
        assert limiter.bucket("A").count == 1

    def test_unknown_address_has_no_bucket(self, clock):
        assert RateLimiter(clock=clock).bucket("nobody") is None


def test_defaults_allow_ten_per_minute(clock):
    limiter = RateLimiter(clock=clock)
    for _ in range(10):
        limiter.admit("ADDR")
    with pytest.raises(RateLimitExceeded):
        limiter.admit("ADDR")
    clock.now += 60
    limiter.admit("ADDR")
