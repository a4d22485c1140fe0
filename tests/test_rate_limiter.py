"""
Rate limiter tests.

Counters live in fakeredis; the clock is injected so bucket boundaries are
deterministic.
"""
import random
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from app.config import MINUTE_COUNTER_TTL, DAY_COUNTER_TTL
from app.services.rate_limiter import RateLimiter, RateLimitResult, LimitReason, UsageStats


NOON = datetime(2026, 10, 18, 12, 0, 30, tzinfo=timezone.utc).timestamp()
DATE_KEY = '2026-10-18'
OWNER = '12345'


class FakeClock:
    def __init__(self, now: float = NOON):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def limiter(fake_redis, clock):
    return RateLimiter(fake_redis, requests_per_minute=10, chars_per_day=20_000, key_prefix='tts', clock=clock)


class TestCheck:
    """Tests for RateLimiter.check."""

    @pytest.mark.asyncio
    async def test_allows_requests_under_limits(self, limiter):
        """A fresh owner is allowed with no reason and no notice."""
        result = await limiter.check(OWNER, 100)

        assert result == RateLimitResult(allowed=True)

    @pytest.mark.asyncio
    async def test_blocks_at_minute_limit(self, limiter):
        """After N increments in one bucket the next check is blocked."""
        for _ in range(10):
            await limiter.increment(OWNER, 100)

        result = await limiter.check(OWNER, 100)

        assert result == RateLimitResult(allowed=False, reason=LimitReason.minute_limit)

    @pytest.mark.asyncio
    async def test_day_limit_notifies_first_time(self, limiter, fake_redis):
        """Going over the daily budget is allowed and asks for a notice."""
        await fake_redis.set(f'tts:rate:day:{OWNER}:{DATE_KEY}', str(20_000 - 500))

        result = await limiter.check(OWNER, 1000)

        assert result == RateLimitResult(allowed=True, reason=LimitReason.day_limit, notify=True)

    @pytest.mark.asyncio
    async def test_day_limit_does_not_notify_twice(self, limiter, fake_redis):
        """An existing notified marker suppresses the notice."""
        await fake_redis.set(f'tts:rate:day:{OWNER}:{DATE_KEY}', str(20_000 - 500))
        await fake_redis.set(f'tts:rate:notified:{OWNER}:{DATE_KEY}', '1')

        result = await limiter.check(OWNER, 1000)

        assert result == RateLimitResult(allowed=True, reason=LimitReason.day_limit, notify=False)

    @pytest.mark.asyncio
    async def test_exactly_at_day_limit_is_not_over(self, limiter, fake_redis):
        """Landing exactly on the budget does not trigger the soft limit."""
        await fake_redis.set(f'tts:rate:day:{OWNER}:{DATE_KEY}', str(20_000 - 1000))

        result = await limiter.check(OWNER, 1000)

        assert result == RateLimitResult(allowed=True)

    @pytest.mark.asyncio
    async def test_check_does_not_increment(self, limiter):
        """Checking only reads counters."""
        for _ in range(25):
            await limiter.check(OWNER, 500)

        assert await limiter.usage(OWNER) == UsageStats(minute_requests=0, day_chars=0)

    @pytest.mark.asyncio
    async def test_minute_limit_takes_precedence(self, limiter, fake_redis):
        """When both limits trigger, the minute limit wins and notify is not set."""
        await fake_redis.set(f'tts:rate:day:{OWNER}:{DATE_KEY}', str(20_000))
        for _ in range(10):
            await limiter.increment(OWNER, 100)

        result = await limiter.check(OWNER, 100)

        assert result.allowed is False
        assert result.reason == LimitReason.minute_limit
        assert result.notify is False


class TestIncrement:
    """Tests for RateLimiter.increment and usage."""

    @pytest.mark.asyncio
    async def test_increments_both_counters(self, limiter):
        await limiter.increment(OWNER, 300)
        await limiter.increment(OWNER, 700)
        await limiter.increment(OWNER, 500)

        usage = await limiter.usage(OWNER)

        assert usage.minute_requests == 3
        assert usage.day_chars == 1500

    @pytest.mark.asyncio
    async def test_zero_usage_for_new_owner(self, limiter):
        assert await limiter.usage(OWNER) == UsageStats(minute_requests=0, day_chars=0)

    @pytest.mark.asyncio
    async def test_sets_ttl_on_counters(self, limiter, fake_redis):
        """Counters expire after the window they bound, never before."""
        await limiter.increment(OWNER, 100)

        minute_bucket = int(NOON // 60)
        minute_ttl = await fake_redis.ttl(f'tts:rate:min:{OWNER}:{minute_bucket}')
        day_ttl = await fake_redis.ttl(f'tts:rate:day:{OWNER}:{DATE_KEY}')

        assert 60 < minute_ttl <= MINUTE_COUNTER_TTL
        assert 24 * 60 * 60 < day_ttl <= DAY_COUNTER_TTL


class TestMarkNotified:
    """Tests for RateLimiter.mark_notified."""

    @pytest.mark.asyncio
    async def test_sets_marker_with_ttl(self, limiter, fake_redis):
        await limiter.mark_notified(OWNER)

        key = f'tts:rate:notified:{OWNER}:{DATE_KEY}'
        assert await fake_redis.get(key) == '1'
        assert 0 < await fake_redis.ttl(key) <= DAY_COUNTER_TTL

    @pytest.mark.asyncio
    async def test_notify_flips_once_per_day(self, limiter, fake_redis, clock):
        """Once marked, checks over budget stop notifying until the day rolls over."""
        await fake_redis.set(f'tts:rate:day:{OWNER}:{DATE_KEY}', str(20_000))

        assert (await limiter.check(OWNER, 100)).notify is True
        await limiter.mark_notified(OWNER)
        assert (await limiter.check(OWNER, 100)).notify is False

        # Next UTC day: fresh budget, fresh marker
        clock.now += 24 * 60 * 60
        await limiter.increment(OWNER, 20_000)
        assert (await limiter.check(OWNER, 100)).notify is True


class TestBuckets:
    """Fixed-window bucketing."""

    @pytest.mark.asyncio
    async def test_minute_bucket_rollover_resets_hard_limit(self, limiter, clock):
        for _ in range(10):
            await limiter.increment(OWNER, 10)
        assert (await limiter.check(OWNER, 10)).allowed is False

        clock.now += 60

        assert (await limiter.check(OWNER, 10)).allowed is True
        usage = await limiter.usage(OWNER)
        assert usage.minute_requests == 0
        assert usage.day_chars == 100

    @pytest.mark.asyncio
    async def test_boundary_allows_two_full_buckets(self, limiter, clock):
        """Up to 2N requests fit across a minute boundary; this is accepted."""
        clock.now = (int(NOON // 60) + 1) * 60 - 1
        allowed = 0
        for _ in range(10):
            if (await limiter.check(OWNER, 1)).allowed:
                await limiter.increment(OWNER, 1)
                allowed += 1

        clock.now += 2
        for _ in range(10):
            if (await limiter.check(OWNER, 1)).allowed:
                await limiter.increment(OWNER, 1)
                allowed += 1

        assert allowed == 20


class TestScenarios:
    """End-to-end admission scenarios."""

    @pytest.mark.asyncio
    async def test_ten_requests_then_rejection(self, limiter):
        """10 requests of 50 chars in one minute pass; the 11th is rejected."""
        for i in range(10):
            result = await limiter.check(OWNER, 50)
            assert result.allowed is True, f'request {i + 1} should be allowed'
            await limiter.increment(OWNER, 50)

        result = await limiter.check(OWNER, 50)
        assert result.allowed is False
        assert result.reason == LimitReason.minute_limit

    @pytest.mark.asyncio
    async def test_day_budget_notice_once(self, limiter):
        """At 19,800 chars a 500-char request notifies once, the next does not."""
        await limiter.increment(OWNER, 19_800)

        first = await limiter.check(OWNER, 500)
        assert first.allowed is True
        assert first.reason == LimitReason.day_limit
        assert first.notify is True
        await limiter.mark_notified(OWNER)
        await limiter.increment(OWNER, 500)

        second = await limiter.check(OWNER, 500)
        assert second.allowed is True
        assert second.reason == LimitReason.day_limit
        assert second.notify is False


class TestIsolation:
    """Counters for one owner never move because of another."""

    @pytest.mark.asyncio
    async def test_owners_are_isolated(self, limiter):
        await limiter.increment('111', 500)
        await limiter.increment('222', 300)

        assert (await limiter.usage('111')).day_chars == 500
        assert (await limiter.usage('222')).day_chars == 300

    @pytest.mark.asyncio
    @pytest.mark.parametrize('seed', range(5))
    async def test_random_interleavings(self, limiter, seed):
        """Each owner's usage equals what was done for that owner alone."""
        rng = random.Random(seed)
        owners = ['a', 'b', 'c']
        expected = {owner: [0, 0] for owner in owners}

        for _ in range(60):
            owner = rng.choice(owners)
            op = rng.choice(['check', 'increment', 'notify'])
            weight = rng.randint(0, 2_000)
            if op == 'check':
                await limiter.check(owner, weight)
            elif op == 'increment':
                await limiter.increment(owner, weight)
                expected[owner][0] += 1
                expected[owner][1] += weight
            else:
                await limiter.mark_notified(owner)

        for owner in owners:
            usage = await limiter.usage(owner)
            assert (usage.minute_requests, usage.day_chars) == tuple(expected[owner])
