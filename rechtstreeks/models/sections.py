"""Summons section vocabulary - keys, statuses and display metadata."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class SectionKey(str, Enum):
    """Canonical section keys of a multi-step summons (dagvaarding)."""

    VORDERINGEN = "VORDERINGEN"
    FEITEN = "FEITEN"
    RECHTSGRONDEN = "RECHTSGRONDEN"
    VERLOOP = "VERLOOP"
    VERWEER = "VERWEER"
    PETITUM = "PETITUM"
    PRODUCTIES_SAMENVATTING = "PRODUCTIES_SAMENVATTING"


class SectionStatus(str, Enum):
    """Canonical section lifecycle states."""

    pending = "pending"
    generating = "generating"
    ready_for_review = "ready_for_review"
    approved = "approved"
    rejected = "rejected"

    @classmethod
    def from_label(cls, label: str) -> "SectionStatus":
        """Parse a status label, accepting the legacy draft/needs_changes vocabulary.

        Raises:
            ValueError: If the label is not a known status or alias
        """
        value = STATUS_ALIASES.get(label, label)
        return cls(value)


# Legacy vocabulary used by the single-document section editor
STATUS_ALIASES: dict[str, str] = {
    "draft": SectionStatus.ready_for_review.value,
    "needs_changes": SectionStatus.rejected.value,
}


@dataclass(frozen=True)
class SectionSpec:
    """Static description of one canonical section."""

    key: SectionKey
    step_order: int
    name: str

    @property
    def label(self) -> str:
        return f"{self.step_order}. {self.name}"


SECTION_SPECS: tuple[SectionSpec, ...] = (
    SectionSpec(SectionKey.VORDERINGEN, 1, "Vorderingen"),
    SectionSpec(SectionKey.FEITEN, 2, "Feiten"),
    SectionSpec(SectionKey.RECHTSGRONDEN, 3, "Rechtsgronden"),
    SectionSpec(SectionKey.VERLOOP, 4, "Verloop van de Zaak"),
    SectionSpec(SectionKey.VERWEER, 5, "Verweer"),
    SectionSpec(SectionKey.PETITUM, 6, "Petitum"),
    SectionSpec(SectionKey.PRODUCTIES_SAMENVATTING, 7, "Producties (Samenvatting)"),
)

SECTION_ORDER: tuple[SectionKey, ...] = tuple(spec.key for spec in SECTION_SPECS)

_SPECS_BY_KEY: dict[SectionKey, SectionSpec] = {spec.key: spec for spec in SECTION_SPECS}

SECTION_STATUS_LABELS: dict[SectionStatus, str] = {
    SectionStatus.pending: "Te genereren",
    SectionStatus.generating: "Genereren...",
    SectionStatus.ready_for_review: "Te beoordelen",
    SectionStatus.approved: "Goedgekeurd",
    SectionStatus.rejected: "Afgekeurd",
}


def get_section_spec(key: SectionKey) -> SectionSpec:
    """Look up the static description of a section."""
    return _SPECS_BY_KEY[key]


def canonical_sort_key(key: SectionKey) -> int:
    """Sort key placing sections in canonical step order."""
    return _SPECS_BY_KEY[key].step_order


class Section(BaseModel):
    """Section as returned by the API."""

    id: UUID
    summons_id: UUID
    section_key: SectionKey
    section_name: str
    step_order: int = Field(..., ge=1, le=len(SECTION_SPECS))
    status: SectionStatus
    status_label: str
    generated_text: str | None = None
    user_feedback: str | None = None
    generation_count: int = 0
    warnings: list[str] = Field(default_factory=list)
    last_error: str | None = None
    updated_at: datetime
