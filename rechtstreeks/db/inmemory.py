"""In-memory implementations of repository interfaces.

A single ``asyncio.Lock`` per repository makes every compare-and-set atomic
with respect to other coroutines on the same event loop.
"""

import asyncio
import uuid
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

from rechtstreeks.db.context import RequestContext
from rechtstreeks.db.repositories import (
    AssemblyBuilder,
    CaseEventRecord,
    CaseRecord,
    QuotaRule,
    RetryAfter,
    SectionRecord,
    SubEntityCounts,
    SummonsRecord,
)
from rechtstreeks.models.case import CaseCreate, CaseStatus
from rechtstreeks.models.sections import SectionKey, SectionSpec, SectionStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySummonsRepository:
    """In-memory implementation of SummonsRepository."""

    def __init__(self) -> None:
        self._summons: dict[uuid.UUID, SummonsRecord] = {}
        self._sections: dict[tuple[uuid.UUID, SectionKey], SectionRecord] = {}
        self._lock = asyncio.Lock()

    async def create_summons(
        self,
        case_id: uuid.UUID,
        *,
        template_id: str | None,
        sections: Sequence[SectionSpec],
    ) -> SummonsRecord:
        """Create a summons with pending sections."""
        now = _now()
        record = SummonsRecord(
            summons_id=uuid.uuid4(),
            case_id=case_id,
            template_id=template_id,
            is_multi_step=True,
            assembly_version=0,
            markdown=None,
            html=None,
            html_storage_key=None,
            pdf_storage_key=None,
            assembled_at=None,
            created_at=now,
            updated_at=now,
        )

        async with self._lock:
            self._summons[record.summons_id] = record
            for spec in sections:
                self._sections[(record.summons_id, spec.key)] = SectionRecord(
                    section_id=uuid.uuid4(),
                    summons_id=record.summons_id,
                    section_key=spec.key,
                    section_name=spec.name,
                    step_order=spec.step_order,
                    status=SectionStatus.pending,
                    generated_text=None,
                    user_feedback=None,
                    generation_count=0,
                    warnings=[],
                    previous_status=None,
                    generation_id=None,
                    generation_started_at=None,
                    last_error=None,
                    created_at=now,
                    updated_at=now,
                )

        return record

    async def get_summons(self, summons_id: uuid.UUID) -> SummonsRecord | None:
        """Get summons by ID."""
        return self._summons.get(summons_id)

    def summons_for_case(self, case_id: uuid.UUID) -> list[SummonsRecord]:
        """All summonses of a case."""
        return [s for s in self._summons.values() if s.case_id == case_id]

    async def list_sections(self, summons_id: uuid.UUID) -> list[SectionRecord]:
        """List sections ordered by step order."""
        sections = [s for (sid, _), s in self._sections.items() if sid == summons_id]
        return sorted(sections, key=lambda s: s.step_order)

    async def get_section(
        self, summons_id: uuid.UUID, key: SectionKey
    ) -> SectionRecord | None:
        """Get one section by key."""
        return self._sections.get((summons_id, key))

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
        async with self._lock:
            section = self._sections.get((summons_id, key))
            if section is None or section.status not in allowed:
                return None

            updated = replace(
                section,
                status=SectionStatus.generating,
                previous_status=section.status,
                generation_id=generation_id,
                generation_started_at=started_at,
                last_error=None,
                updated_at=_now(),
            )
            self._sections[(summons_id, key)] = updated
            return updated

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
        async with self._lock:
            section = self._sections.get((summons_id, key))
            if section is None or not _owns_generation(section, generation_id):
                return None

            updated = replace(
                section,
                status=SectionStatus.ready_for_review,
                generated_text=text,
                warnings=list(warnings),
                generation_count=section.generation_count + 1,
                previous_status=None,
                generation_id=None,
                generation_started_at=None,
                last_error=None,
                updated_at=_now(),
            )
            self._sections[(summons_id, key)] = updated
            return updated

    async def abort_generation(
        self,
        summons_id: uuid.UUID,
        key: SectionKey,
        *,
        generation_id: uuid.UUID,
        error: str,
    ) -> SectionRecord | None:
        """Revert to the prior status if the generation token still matches."""
        async with self._lock:
            section = self._sections.get((summons_id, key))
            if section is None or not _owns_generation(section, generation_id):
                return None

            updated = replace(
                section,
                status=section.previous_status or SectionStatus.pending,
                previous_status=None,
                generation_id=None,
                generation_started_at=None,
                last_error=error,
                updated_at=_now(),
            )
            self._sections[(summons_id, key)] = updated
            return updated

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
        async with self._lock:
            section = self._sections.get((summons_id, key))
            if section is None or section.status not in allowed:
                return None

            updated = replace(
                section,
                status=status,
                user_feedback=feedback if feedback is not None else section.user_feedback,
                updated_at=_now(),
            )
            self._sections[(summons_id, key)] = updated
            return updated

    async def assemble(self, summons_id: uuid.UUID, build: AssemblyBuilder) -> SummonsRecord:
        """Snapshot, build and persist while holding the repository lock."""
        async with self._lock:
            summons = self._summons[summons_id]
            snapshot = await self.list_sections(summons_id)
            version = summons.assembly_version + 1

            output = build(snapshot, version)

            now = _now()
            updated = replace(
                summons,
                assembly_version=version,
                markdown=output.markdown,
                html=output.html,
                html_storage_key=output.html_storage_key,
                pdf_storage_key=output.pdf_storage_key,
                assembled_at=now,
                updated_at=now,
            )
            self._summons[summons_id] = updated
            return updated


def _owns_generation(section: SectionRecord, generation_id: uuid.UUID) -> bool:
    return section.status == SectionStatus.generating and section.generation_id == generation_id


class InMemoryCaseRepository:
    """In-memory implementation of CaseRepository.

    Documents, analyses and letters live in the external case store; only
    their presence is tracked here.
    """

    def __init__(self, summons: InMemorySummonsRepository | None = None) -> None:
        self._cases: dict[uuid.UUID, CaseRecord] = {}
        self._events: list[CaseEventRecord] = []
        self._documents: dict[uuid.UUID, int] = {}
        self._analyses: dict[uuid.UUID, int] = {}
        self._letters: dict[uuid.UUID, int] = {}
        self._summons = summons

    async def create_case(self, data: CaseCreate, ctx: RequestContext) -> CaseRecord:
        """Create a new case."""
        now = _now()
        record = CaseRecord(
            case_id=uuid.uuid4(),
            owner_user_id=ctx.user_id,
            title=data.title,
            description=data.description,
            category=data.category,
            claim_amount=data.claim_amount,
            claimant_name=data.claimant_name,
            counterparty_name=data.counterparty_name,
            user_role=data.user_role.value,
            status=CaseStatus.NEW_INTAKE.value,
            created_at=now,
            updated_at=now,
        )
        self._cases[record.case_id] = record
        return record

    async def get_case(self, case_id: uuid.UUID) -> CaseRecord | None:
        """Get case by ID."""
        return self._cases.get(case_id)

    async def list_cases(self, ctx: RequestContext) -> list[CaseRecord]:
        """List cases owned by the current user."""
        results = [c for c in self._cases.values() if c.owner_user_id == ctx.user_id]
        results.sort(key=lambda c: c.created_at, reverse=True)
        return results

    async def update_status(self, case_id: uuid.UUID, status: CaseStatus) -> CaseRecord | None:
        """Set case status."""
        record = self._cases.get(case_id)
        if record is None:
            return None

        updated = replace(record, status=status.value, updated_at=_now())
        self._cases[case_id] = updated
        return updated

    def set_raw_status(self, case_id: uuid.UUID, status: str) -> None:
        """Store an arbitrary status string, as legacy rows may contain."""
        self._cases[case_id] = replace(self._cases[case_id], status=status)

    def add_document(self, case_id: uuid.UUID) -> None:
        self._documents[case_id] = self._documents.get(case_id, 0) + 1

    def add_analysis(self, case_id: uuid.UUID) -> None:
        self._analyses[case_id] = self._analyses.get(case_id, 0) + 1

    def add_letter(self, case_id: uuid.UUID) -> None:
        self._letters[case_id] = self._letters.get(case_id, 0) + 1

    async def count_sub_entities(self, case_id: uuid.UUID) -> SubEntityCounts:
        """Count sub-entities of a case."""
        summonses = self._summons.summons_for_case(case_id) if self._summons else []
        return SubEntityCounts(
            documents=self._documents.get(case_id, 0),
            analyses=self._analyses.get(case_id, 0),
            letters=self._letters.get(case_id, 0),
            summonses=len(summonses),
            assembled_summonses=sum(1 for s in summonses if s.assembly_version > 0),
        )

    async def append_event(
        self,
        case_id: uuid.UUID,
        actor_user_id: uuid.UUID,
        type: str,
        payload: dict[str, Any] | None = None,
    ) -> CaseEventRecord:
        """Append a timeline event."""
        event = CaseEventRecord(
            event_id=uuid.uuid4(),
            case_id=case_id,
            actor_user_id=actor_user_id,
            type=type,
            payload=payload or {},
            created_at=_now(),
        )
        self._events.append(event)
        return event

    async def list_events(self, case_id: uuid.UUID) -> list[CaseEventRecord]:
        """List timeline events, newest first."""
        return [e for e in reversed(self._events) if e.case_id == case_id]


class InMemoryRateLimiter:
    """Per-process fixed windows, opened by the first request under a key."""

    def __init__(self) -> None:
        self._windows: dict[str, tuple[datetime, int]] = {}

    def check_quota(self, key: str, now: datetime, rule: QuotaRule) -> RetryAfter | None:
        window = self._windows.get(key)
        window_length = timedelta(seconds=rule.window_seconds)

        if window is None or now >= window[0] + window_length:
            self._windows[key] = (now, 1)
            return None

        window_start, count = window
        if count >= rule.limit:
            seconds_remaining = int((window_start + window_length - now).total_seconds())
            return RetryAfter(seconds=max(1, seconds_remaining))

        self._windows[key] = (window_start, count + 1)
        return None

