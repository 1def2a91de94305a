"""Generation quota keys and the Redis-backed counter behind them."""

import uuid
from datetime import datetime

import redis

from rechtstreeks.db.repositories import QuotaRule, QuotaScope, RetryAfter
from rechtstreeks.models.sections import SectionKey


def quota_key(
    rule: QuotaRule, user_id: uuid.UUID, summons_id: uuid.UUID, section_key: SectionKey
) -> str:
    """Counter key for one generation attempt under ``rule``.

    User quotas follow the litigant across summonses; section quotas cap how
    often one section of one summons is regenerated, whoever asks.
    """
    if rule.scope is QuotaScope.user:
        return f"user:{user_id}"
    return f"section:{summons_id}:{section_key.value}"


class RedisRateLimiter:
    """Fixed windows aligned to the clock, shared by every API process."""

    def __init__(self, redis_client: redis.Redis) -> None:
        self._redis = redis_client

    def check_quota(self, key: str, now: datetime, rule: QuotaRule) -> RetryAfter | None:
        timestamp = int(now.timestamp())
        window_start = timestamp - timestamp % rule.window_seconds
        counter = f"ai_quota:{key}:{window_start}"

        pipe = self._redis.pipeline()
        pipe.incr(counter)
        pipe.expire(counter, rule.window_seconds, nx=True)
        count, _ = pipe.execute()

        if count <= rule.limit:
            return None
        return RetryAfter(seconds=max(1, window_start + rule.window_seconds - timestamp))
