import pytest

from toolgate.audit.ratelimit import TokenBucketRateLimiter
from toolgate.config.schema import AuditConfig
from toolgate.utils.exceptions import RateLimitError


def test_exactly_capacity_calls_admitted_without_elapsed_time(clock):
    limiter = TokenBucketRateLimiter(requests_per_second=10, burst_size=5, clock=clock)
    assert [limiter.allow() for _ in range(5)] == [True] * 5
    assert limiter.allow() is False


def test_refill_is_proportional_to_elapsed_time(clock):
    limiter = TokenBucketRateLimiter(requests_per_second=10, burst_size=5, clock=clock)
    for _ in range(5):
        limiter.allow()
    clock.advance(0.2)
    assert limiter.allow() is True
    assert limiter.allow() is True
    assert limiter.allow() is False


def test_tokens_never_exceed_capacity(clock):
    limiter = TokenBucketRateLimiter(requests_per_second=100, burst_size=3, clock=clock)
    clock.advance(60)
    assert limiter.get_stats()["available_tokens"] == 3
    assert sum(limiter.allow() for _ in range(10)) == 3


def test_allow_n_is_all_or_nothing(clock):
    limiter = TokenBucketRateLimiter(requests_per_second=1, burst_size=4, clock=clock)
    assert limiter.allow_n(3) is True
    assert limiter.allow_n(2) is False
    assert limiter.get_stats()["available_tokens"] == 1
    assert limiter.allow_n(1) is True


def test_disabled_limiter_always_admits(clock):
    limiter = TokenBucketRateLimiter(requests_per_second=1, burst_size=1, enabled=False, clock=clock)
    assert all(limiter.allow() for _ in range(10_000))
    assert limiter.allow_n(1_000_000) is True


def test_non_positive_settings_fall_back_to_defaults(clock):
    stats = TokenBucketRateLimiter(requests_per_second=0, burst_size=-1, clock=clock).get_stats()
    assert stats["max_tokens"] == 200
    assert stats["refill_rate"] == 100


def test_get_stats_reports_shape(clock):
    limiter = TokenBucketRateLimiter(requests_per_second=2, burst_size=4, clock=clock)
    limiter.allow()
    assert limiter.get_stats() == {
        "enabled": True,
        "available_tokens": 3,
        "max_tokens": 4,
        "refill_rate": 2,
    }


def test_wait_gives_up_after_ceiling(clock):
    limiter = TokenBucketRateLimiter(requests_per_second=0.001, burst_size=1, clock=clock)
    limiter.allow()
    sleeps = []
    with pytest.raises(RateLimitError):
        limiter.wait(sleep=sleeps.append)
    assert len(sleeps) == 100
    assert all(s == pytest.approx(0.1) for s in sleeps)


def test_wait_returns_once_a_token_refills(clock):
    limiter = TokenBucketRateLimiter(requests_per_second=10, burst_size=1, clock=clock)
    limiter.allow()
    limiter.wait(sleep=lambda s: clock.advance(s))
    assert limiter.get_stats()["available_tokens"] < 1


@pytest.mark.asyncio
async def test_wait_async_disabled_returns_immediately():
    limiter = TokenBucketRateLimiter(burst_size=1, enabled=False)
    await limiter.wait_async()


def test_from_config():
    limiter = TokenBucketRateLimiter.from_config(
        AuditConfig(rate_limit_enabled=False, rate_limit_rps=5, rate_limit_burst=7)
    )
    stats = limiter.get_stats()
    assert stats["enabled"] is False
    assert stats["max_tokens"] == 7
    assert stats["refill_rate"] == 5
