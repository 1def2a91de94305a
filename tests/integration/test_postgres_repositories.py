"""PostgreSQL-specific tests for row locking and concurrent guarded updates.

Run with: DATABASE_URL='postgresql://...' pytest -m postgres
"""

import asyncio
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from rechtstreeks.db.context import RequestContext
from rechtstreeks.db.engine import create_session_factory
from rechtstreeks.db.repositories import AssemblyOutput, SectionRecord
from rechtstreeks.db.sql_repositories import SqlCaseRepository, SqlSummonsRepository
from rechtstreeks.models.case import CaseCreate
from rechtstreeks.models.sections import SECTION_SPECS, SectionKey, SectionStatus


@pytest.mark.postgres
@pytest.mark.asyncio
async def test_concurrent_generate_single_winner(postgres_engine: AsyncEngine) -> None:
    factory = create_session_factory(postgres_engine)
    cases = SqlCaseRepository(factory)
    summonses = SqlSummonsRepository(factory)
    case = await cases.create_case(
        CaseCreate(title="Postgres zaak"), RequestContext(user_id=uuid.uuid4())
    )
    summons = await summonses.create_summons(case.case_id, template_id=None, sections=SECTION_SPECS)

    results = await asyncio.gather(
        *[
            summonses.begin_generation(
                summons.summons_id,
                SectionKey.RECHTSGRONDEN,
                allowed=frozenset({SectionStatus.pending}),
                generation_id=uuid.uuid4(),
                started_at=datetime.now(timezone.utc),
            )
            for _ in range(10)
        ]
    )

    assert len([r for r in results if r is not None]) == 1


@pytest.mark.postgres
@pytest.mark.asyncio
async def test_concurrent_assemblies_get_distinct_versions(postgres_engine: AsyncEngine) -> None:
    factory = create_session_factory(postgres_engine)
    cases = SqlCaseRepository(factory)
    summonses = SqlSummonsRepository(factory)
    case = await cases.create_case(
        CaseCreate(title="Postgres zaak"), RequestContext(user_id=uuid.uuid4())
    )
    summons = await summonses.create_summons(case.case_id, template_id=None, sections=SECTION_SPECS)

    def build(sections: list[SectionRecord], version: int) -> AssemblyOutput:
        return AssemblyOutput(
            markdown=f"v{version}",
            html="",
            html_storage_key=f"v{version}.html",
            pdf_storage_key=f"v{version}.pdf",
        )

    records = await asyncio.gather(*[summonses.assemble(summons.summons_id, build) for _ in range(3)])

    assert sorted(r.assembly_version for r in records) == [1, 2, 3]
