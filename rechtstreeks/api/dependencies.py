"""Shared FastAPI dependencies - repositories, workflow and rate limiting."""

from functools import lru_cache
from typing import Annotated

import redis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rechtstreeks.config import get_settings
from rechtstreeks.db.engine import create_session_factory, get_async_engine
from rechtstreeks.db.inmemory import InMemoryRateLimiter
from rechtstreeks.db.repositories import CaseRepository, RateLimiter, SummonsRepository
from rechtstreeks.db.sql_repositories import SqlCaseRepository, SqlSummonsRepository
from rechtstreeks.llm.client import get_section_generator
from rechtstreeks.middleware.ratelimit import GenerationQuota, default_quota_rules
from rechtstreeks.ratelimit import RedisRateLimiter
from rechtstreeks.storage.files import LocalFileStorage
from rechtstreeks.workflow.orchestrator import SummonsWorkflow


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Process-wide session factory."""
    return create_session_factory(get_async_engine())


def get_case_repository() -> CaseRepository:
    return SqlCaseRepository(get_session_factory())


def get_summons_repository() -> SummonsRepository:
    return SqlSummonsRepository(get_session_factory())


_workflow: SummonsWorkflow | None = None


def get_workflow() -> SummonsWorkflow:
    """Process-wide workflow; it owns the in-flight generation tasks."""
    global _workflow
    if _workflow is None:
        settings = get_settings()
        _workflow = SummonsWorkflow(
            get_case_repository(),
            get_summons_repository(),
            get_section_generator(),
            LocalFileStorage(settings.file_storage_dir),
            generation_timeout_seconds=settings.generation_timeout_seconds,
            stale_grace_seconds=settings.stale_generation_grace_seconds,
        )
    return _workflow


async def shutdown_workflow() -> None:
    """Cancel in-flight generations of the process-wide workflow."""
    global _workflow
    if _workflow is not None:
        await _workflow.shutdown()
        _workflow = None


@lru_cache
def get_rate_limiter() -> RateLimiter:
    """Redis limiter when configured, otherwise per-process fixed window."""
    settings = get_settings()
    if settings.redis_url:
        client = redis.from_url(settings.redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        return RedisRateLimiter(client)
    return InMemoryRateLimiter()


def get_generation_quota(
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> GenerationQuota:
    return GenerationQuota(limiter, default_quota_rules(get_settings()))
