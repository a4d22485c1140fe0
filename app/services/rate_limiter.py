"""
Admission control over counters in the shared store.

Two limits per owner:
    - Hard: at most N requests per wall-clock minute bucket. A request is
      blocked once the current bucket already holds N. Fixed buckets allow up
      to 2N requests across a minute boundary; that approximation is accepted.
    - Soft: a daily character budget per UTC calendar day. Exceeding it never
      blocks; it asks the caller to notify the owner once per day.

``check`` only reads. Counters change only through ``increment`` (after a
request is accepted) and ``mark_notified``.
"""
import enum
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from redis.asyncio import Redis

from app.config import (
    KEY_PREFIX,
    RATE_LIMIT_REQUESTS_PER_MINUTE,
    RATE_LIMIT_CHARS_PER_DAY,
    MINUTE_COUNTER_TTL,
    DAY_COUNTER_TTL,
)

logger = logging.getLogger(__name__)


class LimitReason(str, enum.Enum):
    minute_limit = 'minute_limit'
    day_limit = 'day_limit'


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    reason: Optional[LimitReason] = None
    notify: bool = False


@dataclass(frozen=True)
class UsageStats:
    minute_requests: int
    day_chars: int


class RateLimiter:
    """
    Per-owner request and character limits.

    Args:
        redis: Shared store client (decode_responses=True)
        requests_per_minute: Hard limit per minute bucket
        chars_per_day: Soft daily character budget
        clock: Returns the current Unix time; injectable for bucket tests
    """

    def __init__(
        self,
        redis: Redis,
        requests_per_minute: int = RATE_LIMIT_REQUESTS_PER_MINUTE,
        chars_per_day: int = RATE_LIMIT_CHARS_PER_DAY,
        key_prefix: str = KEY_PREFIX,
        clock: Callable[[], float] = time.time,
    ):
        self._redis = redis
        self.requests_per_minute = requests_per_minute
        self.chars_per_day = chars_per_day
        self._prefix = key_prefix
        self._clock = clock

    def _buckets(self) -> Tuple[int, str]:
        now = self._clock()
        minute_bucket = int(now // 60)
        date_bucket = datetime.fromtimestamp(now, tz=timezone.utc).strftime('%Y-%m-%d')
        return minute_bucket, date_bucket

    def minute_key(self, owner_id: str, minute_bucket: int) -> str:
        return f'{self._prefix}:rate:min:{owner_id}:{minute_bucket}'

    def day_key(self, owner_id: str, date_bucket: str) -> str:
        return f'{self._prefix}:rate:day:{owner_id}:{date_bucket}'

    def notified_key(self, owner_id: str, date_bucket: str) -> str:
        return f'{self._prefix}:rate:notified:{owner_id}:{date_bucket}'

    async def check(self, owner_id: str, weight: int) -> RateLimitResult:
        """
        Decide whether a request of ``weight`` characters may proceed.

        The minute limit wins over the day limit; when it blocks, the
        notification flag is not considered.
        """
        minute_bucket, date_bucket = self._buckets()

        minute_count = await self._redis.get(self.minute_key(owner_id, minute_bucket))
        if minute_count is not None and int(minute_count) >= self.requests_per_minute:
            logger.info('Owner %s blocked by minute limit (%s requests)', owner_id, minute_count)
            return RateLimitResult(allowed=False, reason=LimitReason.minute_limit)

        day_count = await self._redis.get(self.day_key(owner_id, date_bucket))
        current_day_chars = int(day_count) if day_count is not None else 0
        if current_day_chars + weight > self.chars_per_day:
            already_notified = await self._redis.get(self.notified_key(owner_id, date_bucket))
            return RateLimitResult(
                allowed=True,
                reason=LimitReason.day_limit,
                notify=already_notified is None,
            )

        return RateLimitResult(allowed=True)

    async def increment(self, owner_id: str, weight: int):
        """Count one accepted request and its characters."""
        minute_bucket, date_bucket = self._buckets()
        minute_key = self.minute_key(owner_id, minute_bucket)
        day_key = self.day_key(owner_id, date_bucket)

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(minute_key)
            pipe.expire(minute_key, MINUTE_COUNTER_TTL)
            pipe.incrby(day_key, weight)
            pipe.expire(day_key, DAY_COUNTER_TTL)
            await pipe.execute()

    async def mark_notified(self, owner_id: str):
        """Record that the owner was told about the daily budget today."""
        _, date_bucket = self._buckets()
        await self._redis.set(self.notified_key(owner_id, date_bucket), '1', ex=DAY_COUNTER_TTL)

    async def usage(self, owner_id: str) -> UsageStats:
        """Current minute requests and day characters for an owner."""
        minute_bucket, date_bucket = self._buckets()
        minute_count, day_count = await self._redis.mget(
            self.minute_key(owner_id, minute_bucket),
            self.day_key(owner_id, date_bucket),
        )
        return UsageStats(
            minute_requests=int(minute_count) if minute_count is not None else 0,
            day_chars=int(day_count) if day_count is not None else 0,
        )
