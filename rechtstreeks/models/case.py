"""Case status enum and consolidated status metadata."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class CaseStatus(str, Enum):
    """Procedural lifecycle of a kantonrecht case."""

    NEW_INTAKE = "NEW_INTAKE"
    DOCS_UPLOADED = "DOCS_UPLOADED"
    ANALYZED = "ANALYZED"
    LETTER_DRAFTED = "LETTER_DRAFTED"
    BAILIFF_ORDERED = "BAILIFF_ORDERED"
    SERVED = "SERVED"
    SUMMONS_DRAFTED = "SUMMONS_DRAFTED"
    FILED = "FILED"
    PROCEEDINGS_ONGOING = "PROCEEDINGS_ONGOING"
    JUDGMENT = "JUDGMENT"


class UserRole(str, Enum):
    """Which side of the dispute the user is on."""

    EISER = "EISER"
    GEDAAGDE = "GEDAAGDE"


@dataclass(frozen=True)
class StatusMeta:
    """Display and progress metadata for one case status."""

    step: int
    label: str
    next_action: str


TOTAL_STEPS = 9

# SERVED and SUMMONS_DRAFTED share step 6.
CASE_STATUS_METADATA: dict[CaseStatus, StatusMeta] = {
    CaseStatus.NEW_INTAKE: StatusMeta(1, "Nieuwe intake", "Upload je documenten"),
    CaseStatus.DOCS_UPLOADED: StatusMeta(2, "Documenten geüpload", "Start analyse"),
    CaseStatus.ANALYZED: StatusMeta(3, "Geanalyseerd", "Genereer brief"),
    CaseStatus.LETTER_DRAFTED: StatusMeta(4, "Brief opgesteld", "Inschakelen deurwaarder"),
    CaseStatus.BAILIFF_ORDERED: StatusMeta(5, "Deurwaarder ingeschakeld", "Wacht op betekening"),
    CaseStatus.SERVED: StatusMeta(6, "Betekend", "Dossier aanbrengen bij rechtbank"),
    CaseStatus.SUMMONS_DRAFTED: StatusMeta(
        6, "Dagvaarding opgesteld", "Dossier aanbrengen bij rechtbank"
    ),
    CaseStatus.FILED: StatusMeta(7, "Aangebracht bij rechtbank", "Start procedure"),
    CaseStatus.PROCEEDINGS_ONGOING: StatusMeta(8, "Procedure lopend", "Upload vonnis"),
    CaseStatus.JUDGMENT: StatusMeta(9, "Vonnis", "Nieuwe zaak starten"),
}


class CaseCreate(BaseModel):
    """Request body for POST /api/cases."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    category: str | None = None
    claim_amount: Decimal | None = Field(None, ge=0)
    claimant_name: str | None = None
    counterparty_name: str | None = None
    user_role: UserRole = UserRole.EISER


class CaseStatusUpdate(BaseModel):
    """Request body for PATCH /api/cases/{case_id}/status."""

    status: CaseStatus


class CaseProgress(BaseModel):
    """Derived progress projection used for UI gating."""

    status: str
    step: int = Field(..., ge=1, le=TOTAL_STEPS)
    total_steps: int = TOTAL_STEPS
    progress: int = Field(..., ge=0, le=100)
    label: str
    next_action: str
    can_analyze: bool
    can_draft_letter: bool
    can_start_summons: bool
    has_assembled_summons: bool


class CaseView(BaseModel):
    """Case as returned by the API, with its computed progress."""

    id: UUID
    title: str
    description: str | None
    category: str | None
    claim_amount: Decimal | None
    claimant_name: str | None
    counterparty_name: str | None
    user_role: UserRole
    status: str
    created_at: datetime
    updated_at: datetime
    progress: CaseProgress


class CaseEventView(BaseModel):
    """Timeline entry."""

    id: UUID
    type: str
    payload: dict[str, object] = Field(default_factory=dict)
    created_at: datetime
