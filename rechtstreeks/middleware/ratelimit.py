"""Quota enforcement for AI-backed section commands."""

import logging
import uuid
from datetime import datetime, timezone

from rechtstreeks.config import Settings
from rechtstreeks.db.context import RequestContext
from rechtstreeks.db.repositories import QuotaRule, QuotaScope, RateLimiter
from rechtstreeks.models.sections import SectionKey
from rechtstreeks.ratelimit import quota_key
from rechtstreeks.workflow.errors import GenerationQuotaExceeded

logger = logging.getLogger(__name__)


class GenerationQuota:
    """Counts one generate or reopen attempt against every rule."""

    def __init__(self, limiter: RateLimiter, rules: list[QuotaRule]) -> None:
        self._limiter = limiter
        self._rules = rules

    def enforce(
        self,
        ctx: RequestContext,
        summons_id: uuid.UUID,
        section_key: SectionKey,
        now: datetime | None = None,
    ) -> None:
        """Raise GenerationQuotaExceeded at the first rule that is exhausted.

        Rules are checked in order; a refusal leaves later counters untouched.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        for rule in self._rules:
            key = quota_key(rule, ctx.user_id, summons_id, section_key)
            retry_after = self._limiter.check_quota(key, now, rule)
            if retry_after is None:
                continue

            logger.info(
                f"Generation quota exhausted for {key}",
                extra={
                    "structured": {
                        "scope": rule.scope.value,
                        "section_key": section_key.value,
                        "retry_after": retry_after.seconds,
                    }
                },
            )
            raise GenerationQuotaExceeded(section_key, rule.scope.value, retry_after.seconds)


def default_quota_rules(settings: Settings) -> list[QuotaRule]:
    """Per-section hourly cap first, then the per-user minute budget."""
    return [
        QuotaRule(QuotaScope.section, settings.section_generations_per_hour, 3600),
        QuotaRule(QuotaScope.user, settings.ai_generations_per_min, 60),
    ]
