"""Summons workflow models - requests, generated output and assembled documents."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from rechtstreeks.models.sections import Section, SectionKey

WorkflowStatus = Literal["in_progress", "complete"]


class GeneratedSection(BaseModel):
    """Output of the AI generation service for one section."""

    text: str
    warnings: list[str] = Field(default_factory=list)
    source: Literal["openai", "stub"] = "stub"


class CreateSummonsRequest(BaseModel):
    """Request body for POST /api/cases/{case_id}/summons."""

    template_id: str | None = Field(None, max_length=100)


class RejectSectionRequest(BaseModel):
    """Request body for the reject command.

    Empty feedback is accepted.
    """

    feedback: str = Field("", max_length=10000)


class AssembledDocument(BaseModel):
    """Final summons assembled from approved sections."""

    summons_id: UUID
    case_id: UUID
    version: int = Field(..., ge=1)
    section_keys: list[SectionKey]
    markdown: str
    html: str
    html_storage_key: str
    pdf_storage_key: str
    assembled_at: datetime


class SummonsView(BaseModel):
    """Summons summary with its ordered sections."""

    id: UUID
    case_id: UUID
    template_id: str | None
    is_multi_step: bool
    status: WorkflowStatus
    assembly_version: int
    pdf_available: bool
    assembled_at: datetime | None
    sections: list[Section]
