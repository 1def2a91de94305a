"""Shared pytest fixtures for all test suites."""

import os
import uuid
from collections.abc import AsyncGenerator
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from rechtstreeks.api.dependencies import get_case_repository, get_generation_quota, get_workflow
from rechtstreeks.db.context import RequestContext
from rechtstreeks.db.engine import create_session_factory
from rechtstreeks.db.inmemory import (
    InMemoryCaseRepository,
    InMemoryRateLimiter,
    InMemorySummonsRepository,
)
from rechtstreeks.db.models import Base
from rechtstreeks.db.repositories import CaseRecord, QuotaRule, QuotaScope
from rechtstreeks.llm.client import DeterministicStubGenerator
from rechtstreeks.main import app
from rechtstreeks.middleware.ratelimit import GenerationQuota
from rechtstreeks.models.case import CaseCreate
from rechtstreeks.storage.files import LocalFileStorage
from rechtstreeks.workflow.orchestrator import SummonsWorkflow

TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
OTHER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000003")


def _sample_case() -> CaseCreate:
    return CaseCreate(
        title="Huurachterstand Jansen",
        description="Gedaagde betaalt sinds maart de huur niet.",
        category="huur",
        claim_amount=Decimal("1850.00"),
        claimant_name="P. de Vries",
        counterparty_name="J. Jansen",
    )


@pytest.fixture
def case_create() -> CaseCreate:
    return _sample_case()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_USER_ID}"}


@pytest.fixture
def other_auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {OTHER_USER_ID}"}


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(user_id=TEST_USER_ID)


@pytest.fixture
def summons_repo() -> InMemorySummonsRepository:
    return InMemorySummonsRepository()


@pytest.fixture
def case_repo(summons_repo: InMemorySummonsRepository) -> InMemoryCaseRepository:
    return InMemoryCaseRepository(summons=summons_repo)


@pytest.fixture
def file_storage(tmp_path: Path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "storage")


@pytest_asyncio.fixture
async def workflow(
    case_repo: InMemoryCaseRepository,
    summons_repo: InMemorySummonsRepository,
    file_storage: LocalFileStorage,
) -> AsyncGenerator[SummonsWorkflow, None]:
    """Workflow over in-memory repositories with the stub generator."""
    wf = SummonsWorkflow(case_repo, summons_repo, DeterministicStubGenerator(), file_storage)
    yield wf
    await wf.shutdown()


@pytest_asyncio.fixture
async def case(case_repo: InMemoryCaseRepository, ctx: RequestContext) -> CaseRecord:
    return await case_repo.create_case(_sample_case(), ctx)


@pytest_asyncio.fixture
async def api_client(
    workflow: SummonsWorkflow, case_repo: InMemoryCaseRepository
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with in-memory dependencies."""
    app.dependency_overrides[get_workflow] = lambda: workflow
    app.dependency_overrides[get_case_repository] = lambda: case_repo
    app.dependency_overrides[get_generation_quota] = lambda: GenerationQuota(
        InMemoryRateLimiter(), [QuotaRule(QuotaScope.user, 1000, 60)]
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sqlite_session_factory(sqlite_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(sqlite_engine)


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
