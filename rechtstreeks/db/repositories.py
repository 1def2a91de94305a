"""Repository protocol interfaces for data access."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from rechtstreeks.db.context import RequestContext
from rechtstreeks.models.case import CaseCreate, CaseStatus
from rechtstreeks.models.sections import SectionKey, SectionSpec, SectionStatus


@dataclass
class CaseRecord:
    """Case data record.

    ``status`` is kept as a plain string so legacy values survive a read.
    """

    case_id: UUID
    owner_user_id: UUID
    title: str
    description: str | None
    category: str | None
    claim_amount: Decimal | None
    claimant_name: str | None
    counterparty_name: str | None
    user_role: str
    status: str
    created_at: datetime
    updated_at: datetime


@dataclass
class SubEntityCounts:
    """Presence of case sub-entities, used for UI gating."""

    documents: int = 0
    analyses: int = 0
    letters: int = 0
    summonses: int = 0
    assembled_summonses: int = 0


@dataclass
class CaseEventRecord:
    """Timeline event data record."""

    event_id: UUID
    case_id: UUID
    actor_user_id: UUID
    type: str
    payload: dict[str, Any]
    created_at: datetime


@dataclass
class SectionRecord:
    """Summons section data record."""

    section_id: UUID
    summons_id: UUID
    section_key: SectionKey
    section_name: str
    step_order: int
    status: SectionStatus
    generated_text: str | None
    user_feedback: str | None
    generation_count: int
    warnings: list[str]
    previous_status: SectionStatus | None
    generation_id: UUID | None
    generation_started_at: datetime | None
    last_error: str | None
    created_at: datetime
    updated_at: datetime


@dataclass
class SummonsRecord:
    """Summons data record."""

    summons_id: UUID
    case_id: UUID
    template_id: str | None
    is_multi_step: bool
    assembly_version: int
    markdown: str | None
    html: str | None
    html_storage_key: str | None
    pdf_storage_key: str | None
    assembled_at: datetime | None
    created_at: datetime
    updated_at: datetime


@dataclass
class AssemblyOutput:
    """Rendered output of one assembly, ready to be persisted."""

    markdown: str
    html: str
    html_storage_key: str
    pdf_storage_key: str
    section_keys: list[SectionKey] = field(default_factory=list)


# Receives a consistent snapshot of all sections and the next version; raises to abort.
AssemblyBuilder = Callable[[list[SectionRecord], int], AssemblyOutput]


class CaseRepository(Protocol):
    """Repository for case records and their timeline."""

    async def create_case(self, data: CaseCreate, ctx: RequestContext) -> CaseRecord:
        """Create a case owned by the current user."""
        ...

    async def get_case(self, case_id: UUID) -> CaseRecord | None:
        """Get a case by ID regardless of owner."""
        ...

    async def list_cases(self, ctx: RequestContext) -> list[CaseRecord]:
        """List cases owned by the current user, newest first."""
        ...

    async def update_status(self, case_id: UUID, status: CaseStatus) -> CaseRecord | None:
        """Set the case status.

        Returns:
            Updated record, or None if the case does not exist
        """
        ...

    async def count_sub_entities(self, case_id: UUID) -> SubEntityCounts:
        """Count documents, analyses, letters and summonses of a case."""
        ...

    async def append_event(
        self,
        case_id: UUID,
        actor_user_id: UUID,
        type: str,
        payload: dict[str, Any] | None = None,
    ) -> CaseEventRecord:
        """Append a timeline event."""
        ...

    async def list_events(self, case_id: UUID) -> list[CaseEventRecord]:
        """List timeline events, newest first."""
        ...


class SummonsRepository(Protocol):
    """Repository for summonses and their sections.

    Every section mutation is a compare-and-set: it only applies when the
    current status is in ``allowed`` (or the generation token matches) and
    returns None otherwise.
    """

    async def create_summons(
        self,
        case_id: UUID,
        *,
        template_id: str | None,
        sections: Sequence[SectionSpec],
    ) -> SummonsRecord:
        """Create a summons with one pending placeholder per section spec."""
        ...

    async def get_summons(self, summons_id: UUID) -> SummonsRecord | None:
        """Get a summons by ID."""
        ...

    async def list_sections(self, summons_id: UUID) -> list[SectionRecord]:
        """List sections ordered by step order."""
        ...

    async def get_section(self, summons_id: UUID, key: SectionKey) -> SectionRecord | None:
        """Get one section by key."""
        ...

    async def begin_generation(
        self,
        summons_id: UUID,
        key: SectionKey,
        *,
        allowed: frozenset[SectionStatus],
        generation_id: UUID,
        started_at: datetime,
    ) -> SectionRecord | None:
        """Atomically move a section to generating, remembering its prior status."""
        ...

    async def finish_generation(
        self,
        summons_id: UUID,
        key: SectionKey,
        *,
        generation_id: UUID,
        text: str,
        warnings: list[str],
    ) -> SectionRecord | None:
        """Store generated text and move to ready_for_review if the token matches."""
        ...

    async def abort_generation(
        self,
        summons_id: UUID,
        key: SectionKey,
        *,
        generation_id: UUID,
        error: str,
    ) -> SectionRecord | None:
        """Revert to the prior status and record the error if the token matches."""
        ...

    async def set_review_status(
        self,
        summons_id: UUID,
        key: SectionKey,
        *,
        allowed: frozenset[SectionStatus],
        status: SectionStatus,
        feedback: str | None = None,
    ) -> SectionRecord | None:
        """Apply a review decision. ``feedback=None`` leaves stored feedback untouched."""
        ...

    async def assemble(self, summons_id: UUID, build: AssemblyBuilder) -> SummonsRecord:
        """Snapshot all sections, build the output and persist it in one transaction.

        The builder receives the next assembly version number.
        """
        ...


@dataclass
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class QuotaScope(str, Enum):
    """What one generation quota counter is shared by."""

    user = "user"
    section = "section"


@dataclass(frozen=True)
class QuotaRule:
    """At most ``limit`` generations per ``window_seconds`` within one scope."""

    scope: QuotaScope
    limit: int
    window_seconds: int


class RateLimiter(Protocol):
    """Rate limiter interface."""

    def check_quota(self, key: str, now: datetime, rule: QuotaRule) -> RetryAfter | None:
        """Count one request against ``key`` under ``rule``.

        Returns:
            RetryAfter if over quota, None if allowed
        """
        ...
