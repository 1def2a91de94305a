"""SQL implementations of repository interfaces.

Each method runs in its own short transaction so the repositories can be
shared between request handlers and background generation tasks.
"""

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rechtstreeks.db.context import RequestContext
from rechtstreeks.db.models import (
    Analysis,
    Case,
    CaseDocument,
    CaseEvent,
    Letter,
    Summons,
    SummonsSection,
    utcnow,
)
from rechtstreeks.db.repositories import (
    AssemblyBuilder,
    CaseEventRecord,
    CaseRecord,
    SectionRecord,
    SubEntityCounts,
    SummonsRecord,
)
from rechtstreeks.models.case import CaseCreate, CaseStatus
from rechtstreeks.models.sections import SectionKey, SectionSpec, SectionStatus


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on read; treat naive timestamps as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_case_record(row: Case) -> CaseRecord:
    return CaseRecord(
        case_id=row.id,
        owner_user_id=row.owner_user_id,
        title=row.title,
        description=row.description,
        category=row.category,
        claim_amount=row.claim_amount,
        claimant_name=row.claimant_name,
        counterparty_name=row.counterparty_name,
        user_role=row.user_role,
        status=row.status,
        created_at=_as_utc(row.created_at),  # type: ignore[arg-type]
        updated_at=_as_utc(row.updated_at),  # type: ignore[arg-type]
    )


def _to_section_record(row: SummonsSection) -> SectionRecord:
    return SectionRecord(
        section_id=row.id,
        summons_id=row.summons_id,
        section_key=SectionKey(row.section_key),
        section_name=row.section_name,
        step_order=row.step_order,
        status=SectionStatus.from_label(row.status),
        generated_text=row.generated_text,
        user_feedback=row.user_feedback,
        generation_count=row.generation_count,
        warnings=list(row.warnings_json or []),
        previous_status=SectionStatus.from_label(row.previous_status)
        if row.previous_status
        else None,
        generation_id=row.generation_id,
        generation_started_at=_as_utc(row.generation_started_at),
        last_error=row.last_error,
        created_at=_as_utc(row.created_at),  # type: ignore[arg-type]
        updated_at=_as_utc(row.updated_at),  # type: ignore[arg-type]
    )


def _to_summons_record(row: Summons) -> SummonsRecord:
    return SummonsRecord(
        summons_id=row.id,
        case_id=row.case_id,
        template_id=row.template_id,
        is_multi_step=row.is_multi_step,
        assembly_version=row.assembly_version,
        markdown=row.markdown,
        html=row.html,
        html_storage_key=row.html_storage_key,
        pdf_storage_key=row.pdf_storage_key,
        assembled_at=_as_utc(row.assembled_at),
        created_at=_as_utc(row.created_at),  # type: ignore[arg-type]
        updated_at=_as_utc(row.updated_at),  # type: ignore[arg-type]
    )


def _to_event_record(row: CaseEvent) -> CaseEventRecord:
    return CaseEventRecord(
        event_id=row.id,
        case_id=row.case_id,
        actor_user_id=row.actor_user_id,
        type=row.type,
        payload=dict(row.payload or {}),
        created_at=_as_utc(row.created_at),  # type: ignore[arg-type]
    )


class SqlCaseRepository:
    """SQL implementation of CaseRepository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_case(self, data: CaseCreate, ctx: RequestContext) -> CaseRecord:
        """Create a new case."""
        async with self._session_factory.begin() as session:
            row = Case(
                id=uuid.uuid4(),
                owner_user_id=ctx.user_id,
                title=data.title,
                description=data.description,
                category=data.category,
                claim_amount=data.claim_amount,
                claimant_name=data.claimant_name,
                counterparty_name=data.counterparty_name,
                user_role=data.user_role.value,
                status=CaseStatus.NEW_INTAKE.value,
            )
            session.add(row)
            await session.flush()
            return _to_case_record(row)

    async def get_case(self, case_id: uuid.UUID) -> CaseRecord | None:
        """Get case by ID."""
        async with self._session_factory() as session:
            row = await session.get(Case, case_id)
            return _to_case_record(row) if row else None

    async def list_cases(self, ctx: RequestContext) -> list[CaseRecord]:
        """List cases owned by the current user."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Case)
                .where(Case.owner_user_id == ctx.user_id)
                .order_by(Case.created_at.desc())
            )
            return [_to_case_record(row) for row in result.scalars().all()]

    async def update_status(self, case_id: uuid.UUID, status: CaseStatus) -> CaseRecord | None:
        """Set case status."""
        async with self._session_factory.begin() as session:
            row = await session.get(Case, case_id)
            if row is None:
                return None
            row.status = status.value
            row.updated_at = utcnow()
            await session.flush()
            return _to_case_record(row)

    async def count_sub_entities(self, case_id: uuid.UUID) -> SubEntityCounts:
        """Count sub-entities of a case."""

        async def count(session: AsyncSession, model: Any, *criteria: Any) -> int:
            result = await session.execute(
                select(func.count()).select_from(model).where(model.case_id == case_id, *criteria)
            )
            return int(result.scalar_one())

        async with self._session_factory() as session:
            return SubEntityCounts(
                documents=await count(session, CaseDocument),
                analyses=await count(session, Analysis),
                letters=await count(session, Letter),
                summonses=await count(session, Summons),
                assembled_summonses=await count(session, Summons, Summons.assembly_version > 0),
            )

    async def append_event(
        self,
        case_id: uuid.UUID,
        actor_user_id: uuid.UUID,
        type: str,
        payload: dict[str, Any] | None = None,
    ) -> CaseEventRecord:
        """Append a timeline event."""
        async with self._session_factory.begin() as session:
            row = CaseEvent(
                id=uuid.uuid4(),
                case_id=case_id,
                actor_user_id=actor_user_id,
                type=type,
                payload=payload or {},
                created_at=utcnow(),
            )
            session.add(row)
            await session.flush()
            return _to_event_record(row)

    async def list_events(self, case_id: uuid.UUID) -> list[CaseEventRecord]:
        """List timeline events, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(CaseEvent)
                .where(CaseEvent.case_id == case_id)
                .order_by(CaseEvent.created_at.desc())
            )
            return [_to_event_record(row) for row in result.scalars().all()]


class SqlSummonsRepository:
    """SQL implementation of SummonsRepository.

    Status guards are conditional UPDATEs, so two concurrent commands on the
    same section cannot both pass.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_summons(
        self,
        case_id: uuid.UUID,
        *,
        template_id: str | None,
        sections: Sequence[SectionSpec],
    ) -> SummonsRecord:
        """Create a summons with pending sections."""
        async with self._session_factory.begin() as session:
            summons = Summons(
                id=uuid.uuid4(),
                case_id=case_id,
                template_id=template_id,
                is_multi_step=True,
                assembly_version=0,
            )
            session.add(summons)
            for spec in sections:
                session.add(
                    SummonsSection(
                        id=uuid.uuid4(),
                        summons_id=summons.id,
                        section_key=spec.key.value,
                        section_name=spec.name,
                        step_order=spec.step_order,
                        status=SectionStatus.pending.value,
                        generation_count=0,
                        warnings_json=[],
                    )
                )
            await session.flush()
            return _to_summons_record(summons)

    async def get_summons(self, summons_id: uuid.UUID) -> SummonsRecord | None:
        """Get summons by ID."""
        async with self._session_factory() as session:
            row = await session.get(Summons, summons_id)
            return _to_summons_record(row) if row else None

    async def list_sections(self, summons_id: uuid.UUID) -> list[SectionRecord]:
        """List sections ordered by step order."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(SummonsSection)
                .where(SummonsSection.summons_id == summons_id)
                .order_by(SummonsSection.step_order)
            )
            return [_to_section_record(row) for row in result.scalars().all()]

    async def get_section(
        self, summons_id: uuid.UUID, key: SectionKey
    ) -> SectionRecord | None:
        """Get one section by key."""
        async with self._session_factory() as session:
            row = await self._fetch(session, summons_id, key)
            return _to_section_record(row) if row else None

    async def begin_generation(
        self,
        summons_id: uuid.UUID,
        key: SectionKey,
        *,
        allowed: frozenset[SectionStatus],
        generation_id: uuid.UUID,
        started_at: datetime,
    ) -> SectionRecord | None:
        """Move to generating if the current status is allowed."""
        stmt = (
            update(SummonsSection)
            .where(
                SummonsSection.summons_id == summons_id,
                SummonsSection.section_key == key.value,
                SummonsSection.status.in_([status.value for status in allowed]),
            )
            .values(
                previous_status=SummonsSection.status,
                status=SectionStatus.generating.value,
                generation_id=generation_id,
                generation_started_at=started_at,
                last_error=None,
                updated_at=utcnow(),
            )
        )
        return await self._conditional_update(stmt, summons_id, key)

    async def finish_generation(
        self,
        summons_id: uuid.UUID,
        key: SectionKey,
        *,
        generation_id: uuid.UUID,
        text: str,
        warnings: list[str],
    ) -> SectionRecord | None:
        """Store generated text if the generation token still matches."""
        stmt = (
            update(SummonsSection)
            .where(*self._generation_guard(summons_id, key, generation_id))
            .values(
                status=SectionStatus.ready_for_review.value,
                generated_text=text,
                warnings_json=list(warnings),
                generation_count=SummonsSection.generation_count + 1,
                previous_status=None,
                generation_id=None,
                generation_started_at=None,
                last_error=None,
                updated_at=utcnow(),
            )
        )
        return await self._conditional_update(stmt, summons_id, key)

    async def abort_generation(
        self,
        summons_id: uuid.UUID,
        key: SectionKey,
        *,
        generation_id: uuid.UUID,
        error: str,
    ) -> SectionRecord | None:
        """Revert to the prior status if the generation token still matches."""
        stmt = (
            update(SummonsSection)
            .where(*self._generation_guard(summons_id, key, generation_id))
            .values(
                status=func.coalesce(SummonsSection.previous_status, SectionStatus.pending.value),
                previous_status=None,
                generation_id=None,
                generation_started_at=None,
                last_error=error,
                updated_at=utcnow(),
            )
        )
        return await self._conditional_update(stmt, summons_id, key)

    async def set_review_status(
        self,
        summons_id: uuid.UUID,
        key: SectionKey,
        *,
        allowed: frozenset[SectionStatus],
        status: SectionStatus,
        feedback: str | None = None,
    ) -> SectionRecord | None:
        """Apply a review decision if the current status is allowed."""
        values: dict[str, Any] = {"status": status.value, "updated_at": utcnow()}
        if feedback is not None:
            values["user_feedback"] = feedback

        stmt = (
            update(SummonsSection)
            .where(
                SummonsSection.summons_id == summons_id,
                SummonsSection.section_key == key.value,
                SummonsSection.status.in_([s.value for s in allowed]),
            )
            .values(**values)
        )
        return await self._conditional_update(stmt, summons_id, key)

    async def assemble(self, summons_id: uuid.UUID, build: AssemblyBuilder) -> SummonsRecord:
        """Snapshot, build and persist in a single transaction.

        Rows are locked (``FOR UPDATE`` on PostgreSQL) so no section can be
        reopened between the snapshot and the write.
        """
        async with self._session_factory.begin() as session:
            summons = (
                await session.execute(
                    select(Summons).where(Summons.id == summons_id).with_for_update()
                )
            ).scalar_one()
            rows = (
                await session.execute(
                    select(SummonsSection)
                    .where(SummonsSection.summons_id == summons_id)
                    .order_by(SummonsSection.step_order)
                    .with_for_update()
                )
            ).scalars().all()

            snapshot = [_to_section_record(row) for row in rows]
            version = summons.assembly_version + 1
            output = build(snapshot, version)

            now = utcnow()
            summons.assembly_version = version
            summons.markdown = output.markdown
            summons.html = output.html
            summons.html_storage_key = output.html_storage_key
            summons.pdf_storage_key = output.pdf_storage_key
            summons.assembled_at = now
            summons.updated_at = now
            await session.flush()
            return _to_summons_record(summons)

    @staticmethod
    def _generation_guard(
        summons_id: uuid.UUID, key: SectionKey, generation_id: uuid.UUID
    ) -> tuple[Any, ...]:
        return (
            SummonsSection.summons_id == summons_id,
            SummonsSection.section_key == key.value,
            SummonsSection.status == SectionStatus.generating.value,
            SummonsSection.generation_id == generation_id,
        )

    @staticmethod
    async def _fetch(
        session: AsyncSession, summons_id: uuid.UUID, key: SectionKey
    ) -> SummonsSection | None:
        result = await session.execute(
            select(SummonsSection).where(
                SummonsSection.summons_id == summons_id,
                SummonsSection.section_key == key.value,
            )
        )
        return result.scalar_one_or_none()

    async def _conditional_update(
        self, stmt: Any, summons_id: uuid.UUID, key: SectionKey
    ) -> SectionRecord | None:
        """Execute a guarded UPDATE and return the new row, or None if the guard failed."""
        async with self._session_factory.begin() as session:
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            if result.rowcount == 0:
                return None
            row = await self._fetch(session, summons_id, key)
            return _to_section_record(row) if row else None
