"""Integration tests for the SQL repositories on SQLite."""

import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rechtstreeks.db.context import RequestContext
from rechtstreeks.db.models import Summons
from rechtstreeks.db.repositories import AssemblyOutput, SectionRecord
from rechtstreeks.db.sql_repositories import SqlCaseRepository, SqlSummonsRepository
from rechtstreeks.models.case import CaseCreate, CaseStatus
from rechtstreeks.models.sections import SECTION_ORDER, SECTION_SPECS, SectionKey, SectionStatus
from rechtstreeks.workflow.errors import IncompleteWorkflow

PENDING_OR_REJECTED = frozenset({SectionStatus.pending, SectionStatus.rejected})
READY = frozenset({SectionStatus.ready_for_review})


@pytest.fixture
def case_repo(sqlite_session_factory: async_sessionmaker[AsyncSession]) -> SqlCaseRepository:
    return SqlCaseRepository(sqlite_session_factory)


@pytest.fixture
def summons_repo(sqlite_session_factory: async_sessionmaker[AsyncSession]) -> SqlSummonsRepository:
    return SqlSummonsRepository(sqlite_session_factory)


async def _new_summons(
    case_repo: SqlCaseRepository, summons_repo: SqlSummonsRepository, ctx: RequestContext
):
    case = await case_repo.create_case(CaseCreate(title="Onbetaalde factuur"), ctx)
    return await summons_repo.create_summons(case.case_id, template_id=None, sections=SECTION_SPECS)


async def _begin(
    repo: SqlSummonsRepository, summons_id: uuid.UUID, key: SectionKey, generation_id: uuid.UUID
) -> SectionRecord | None:
    return await repo.begin_generation(
        summons_id,
        key,
        allowed=PENDING_OR_REJECTED,
        generation_id=generation_id,
        started_at=datetime.now(timezone.utc),
    )


@pytest.mark.asyncio
async def test_case_crud_and_timeline(case_repo: SqlCaseRepository, ctx: RequestContext) -> None:
    created = await case_repo.create_case(
        CaseCreate(title="Huurachterstand", claim_amount=Decimal("1850.00")), ctx
    )

    fetched = await case_repo.get_case(created.case_id)
    assert fetched is not None
    assert fetched.title == "Huurachterstand"
    assert fetched.claim_amount == Decimal("1850.00")
    assert fetched.status == CaseStatus.NEW_INTAKE.value
    assert fetched.created_at.tzinfo is not None

    updated = await case_repo.update_status(created.case_id, CaseStatus.ANALYZED)
    assert updated.status == CaseStatus.ANALYZED.value
    assert await case_repo.update_status(uuid.uuid4(), CaseStatus.ANALYZED) is None

    await case_repo.append_event(created.case_id, ctx.user_id, "case_created", {"title": "x"})
    await case_repo.append_event(created.case_id, ctx.user_id, "case_status_changed")
    events = await case_repo.list_events(created.case_id)
    assert [e.type for e in events] == ["case_status_changed", "case_created"]
    assert events[1].payload == {"title": "x"}


@pytest.mark.asyncio
async def test_list_cases_is_scoped_to_owner(
    case_repo: SqlCaseRepository, ctx: RequestContext
) -> None:
    await case_repo.create_case(CaseCreate(title="Mijn zaak"), ctx)
    await case_repo.create_case(CaseCreate(title="Andere zaak"), RequestContext(user_id=uuid.uuid4()))

    cases = await case_repo.list_cases(ctx)

    assert [c.title for c in cases] == ["Mijn zaak"]


@pytest.mark.asyncio
async def test_sub_entity_counts(
    case_repo: SqlCaseRepository, summons_repo: SqlSummonsRepository, ctx: RequestContext
) -> None:
    summons = await _new_summons(case_repo, summons_repo, ctx)

    counts = await case_repo.count_sub_entities(summons.case_id)

    assert counts.summonses == 1
    assert counts.assembled_summonses == 0
    assert counts.documents == 0


@pytest.mark.asyncio
async def test_create_summons_seeds_pending_sections(
    case_repo: SqlCaseRepository, summons_repo: SqlSummonsRepository, ctx: RequestContext
) -> None:
    summons = await _new_summons(case_repo, summons_repo, ctx)

    sections = await summons_repo.list_sections(summons.summons_id)

    assert [s.section_key for s in sections] == list(SECTION_ORDER)
    assert all(s.status == SectionStatus.pending for s in sections)
    assert summons.assembly_version == 0
    assert summons.is_multi_step


@pytest.mark.asyncio
async def test_begin_generation_is_conditional(
    case_repo: SqlCaseRepository, summons_repo: SqlSummonsRepository, ctx: RequestContext
) -> None:
    summons = await _new_summons(case_repo, summons_repo, ctx)

    started = await _begin(summons_repo, summons.summons_id, SectionKey.FEITEN, uuid.uuid4())
    assert started.status == SectionStatus.generating
    assert started.previous_status == SectionStatus.pending

    again = await _begin(summons_repo, summons.summons_id, SectionKey.FEITEN, uuid.uuid4())
    assert again is None


@pytest.mark.asyncio
async def test_concurrent_begin_generation_only_one_wins(
    case_repo: SqlCaseRepository, summons_repo: SqlSummonsRepository, ctx: RequestContext
) -> None:
    summons = await _new_summons(case_repo, summons_repo, ctx)

    results = await asyncio.gather(
        *[_begin(summons_repo, summons.summons_id, SectionKey.FEITEN, uuid.uuid4()) for _ in range(5)]
    )

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    stored = await summons_repo.get_section(summons.summons_id, SectionKey.FEITEN)
    assert stored.generation_id == winners[0].generation_id


@pytest.mark.asyncio
async def test_generation_token_guards_finish_and_abort(
    case_repo: SqlCaseRepository, summons_repo: SqlSummonsRepository, ctx: RequestContext
) -> None:
    summons = await _new_summons(case_repo, summons_repo, ctx)
    sid = summons.summons_id
    token = uuid.uuid4()
    await _begin(summons_repo, sid, SectionKey.FEITEN, token)

    stale = await summons_repo.finish_generation(
        sid, SectionKey.FEITEN, generation_id=uuid.uuid4(), text="oud", warnings=[]
    )
    assert stale is None
    assert await summons_repo.abort_generation(
        sid, SectionKey.FEITEN, generation_id=uuid.uuid4(), error="x"
    ) is None

    finished = await summons_repo.finish_generation(
        sid, SectionKey.FEITEN, generation_id=token, text="Feiten tekst", warnings=["let op"]
    )
    assert finished.status == SectionStatus.ready_for_review
    assert finished.generated_text == "Feiten tekst"
    assert finished.warnings == ["let op"]
    assert finished.generation_count == 1
    assert finished.generation_id is None
    assert finished.previous_status is None


@pytest.mark.asyncio
async def test_abort_restores_previous_status(
    case_repo: SqlCaseRepository, summons_repo: SqlSummonsRepository, ctx: RequestContext
) -> None:
    summons = await _new_summons(case_repo, summons_repo, ctx)
    sid = summons.summons_id
    token = uuid.uuid4()
    await _begin(summons_repo, sid, SectionKey.PETITUM, token)
    await summons_repo.finish_generation(
        sid, SectionKey.PETITUM, generation_id=token, text="Eerste", warnings=[]
    )
    await summons_repo.set_review_status(
        sid, SectionKey.PETITUM, allowed=READY, status=SectionStatus.rejected, feedback="korter"
    )

    retry = uuid.uuid4()
    await _begin(summons_repo, sid, SectionKey.PETITUM, retry)
    aborted = await summons_repo.abort_generation(
        sid, SectionKey.PETITUM, generation_id=retry, error="AI service unavailable"
    )

    assert aborted.status == SectionStatus.rejected
    assert aborted.last_error == "AI service unavailable"
    assert aborted.generated_text == "Eerste"
    assert aborted.user_feedback == "korter"


@pytest.mark.asyncio
async def test_review_status_keeps_feedback_when_none(
    case_repo: SqlCaseRepository, summons_repo: SqlSummonsRepository, ctx: RequestContext
) -> None:
    summons = await _new_summons(case_repo, summons_repo, ctx)
    sid = summons.summons_id

    assert await summons_repo.set_review_status(
        sid, SectionKey.VERWEER, allowed=READY, status=SectionStatus.approved
    ) is None

    token = uuid.uuid4()
    await _begin(summons_repo, sid, SectionKey.VERWEER, token)
    await summons_repo.finish_generation(
        sid, SectionKey.VERWEER, generation_id=token, text="Verweer", warnings=[]
    )
    approved = await summons_repo.set_review_status(
        sid, SectionKey.VERWEER, allowed=READY, status=SectionStatus.approved
    )

    assert approved.status == SectionStatus.approved
    assert approved.user_feedback is None


@pytest.mark.asyncio
async def test_assemble_persists_version_and_output(
    case_repo: SqlCaseRepository,
    summons_repo: SqlSummonsRepository,
    sqlite_session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
) -> None:
    summons = await _new_summons(case_repo, summons_repo, ctx)
    seen: list[tuple[int, int]] = []

    def build(sections: list[SectionRecord], version: int) -> AssemblyOutput:
        seen.append((len(sections), version))
        return AssemblyOutput(
            markdown=f"v{version}",
            html=f"<p>v{version}</p>",
            html_storage_key=f"k/v{version}.html",
            pdf_storage_key=f"k/v{version}.pdf",
        )

    first = await summons_repo.assemble(summons.summons_id, build)
    second = await summons_repo.assemble(summons.summons_id, build)

    assert seen == [(7, 1), (7, 2)]
    assert first.assembly_version == 1
    assert second.assembly_version == 2
    assert second.pdf_storage_key == "k/v2.pdf"
    assert second.assembled_at is not None

    async with sqlite_session_factory() as session:
        row = await session.get(Summons, summons.summons_id)
        assert row.markdown == "v2"

    counts = await case_repo.count_sub_entities(summons.case_id)
    assert counts.assembled_summonses == 1


@pytest.mark.asyncio
async def test_failed_build_leaves_summons_untouched(
    case_repo: SqlCaseRepository, summons_repo: SqlSummonsRepository, ctx: RequestContext
) -> None:
    summons = await _new_summons(case_repo, summons_repo, ctx)

    def build(sections: list[SectionRecord], version: int) -> AssemblyOutput:
        raise IncompleteWorkflow([SectionKey.FEITEN])

    with pytest.raises(IncompleteWorkflow):
        await summons_repo.assemble(summons.summons_id, build)

    stored = await summons_repo.get_summons(summons.summons_id)
    assert stored.assembly_version == 0
    assert stored.markdown is None
