"""Models package - re-exports for convenience."""

from rechtstreeks.models.case import (
    CASE_STATUS_METADATA,
    TOTAL_STEPS,
    CaseCreate,
    CaseEventView,
    CaseProgress,
    CaseStatus,
    CaseStatusUpdate,
    CaseView,
    StatusMeta,
    UserRole,
)
from rechtstreeks.models.events import SectionSnapshotEvent
from rechtstreeks.models.sections import (
    SECTION_ORDER,
    SECTION_SPECS,
    SECTION_STATUS_LABELS,
    Section,
    SectionKey,
    SectionSpec,
    SectionStatus,
)
from rechtstreeks.models.summons import (
    AssembledDocument,
    CreateSummonsRequest,
    GeneratedSection,
    RejectSectionRequest,
    SummonsView,
    WorkflowStatus,
)

__all__ = [
    "AssembledDocument",
    "CASE_STATUS_METADATA",
    "CaseCreate",
    "CaseEventView",
    "CaseProgress",
    "CaseStatus",
    "CaseStatusUpdate",
    "CaseView",
    "CreateSummonsRequest",
    "GeneratedSection",
    "RejectSectionRequest",
    "SECTION_ORDER",
    "SECTION_SPECS",
    "SECTION_STATUS_LABELS",
    "Section",
    "SectionKey",
    "SectionSnapshotEvent",
    "SectionSpec",
    "SectionStatus",
    "StatusMeta",
    "SummonsView",
    "TOTAL_STEPS",
    "UserRole",
    "WorkflowStatus",
]
