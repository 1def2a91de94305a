"""SQLAlchemy ORM models for cases, summonses and summons sections."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Timezone-aware current time used for column defaults."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Case(Base):
    """Case table - top-level client matter."""

    __tablename__ = "cases"
    __table_args__ = (
        Index("idx_cases_owner", "owner_user_id"),
        Index("idx_cases_status", "status"),
        Index("idx_cases_created", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    claim_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    claimant_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    counterparty_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_role: Mapped[str] = mapped_column(String(20), nullable=False, default="EISER")
    status: Mapped[str] = mapped_column(String(40), nullable=False, default="NEW_INTAKE")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    documents: Mapped[list["CaseDocument"]] = relationship(
        "CaseDocument", back_populates="case", cascade="all, delete-orphan"
    )
    analyses: Mapped[list["Analysis"]] = relationship(
        "Analysis", back_populates="case", cascade="all, delete-orphan"
    )
    letters: Mapped[list["Letter"]] = relationship(
        "Letter", back_populates="case", cascade="all, delete-orphan"
    )
    summonses: Mapped[list["Summons"]] = relationship(
        "Summons", back_populates="case", cascade="all, delete-orphan"
    )
    events: Mapped[list["CaseEvent"]] = relationship(
        "CaseEvent", back_populates="case", cascade="all, delete-orphan"
    )


class CaseDocument(Base):
    """Uploaded document reference - binary lives in file storage."""

    __tablename__ = "case_documents"
    __table_args__ = (Index("idx_documents_case", "case_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    storage_key: Mapped[str] = mapped_column(Text, nullable=False)
    mimetype: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    case: Mapped["Case"] = relationship("Case", back_populates="documents")


class Analysis(Base):
    """Legal analysis version - content is owned by the analysis service."""

    __tablename__ = "analyses"
    __table_args__ = (Index("idx_analyses_version", "case_id", "version"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    analysis_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    case: Mapped["Case"] = relationship("Case", back_populates="analyses")


class Letter(Base):
    """Demand letter reference."""

    __tablename__ = "letters"
    __table_args__ = (Index("idx_letters_case", "case_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    brief_type: Mapped[str | None] = mapped_column(String(40), nullable=True)
    pdf_storage_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    case: Mapped["Case"] = relationship("Case", back_populates="letters")


class Summons(Base):
    """Summons table - aggregate root of the section workflow."""

    __tablename__ = "summons"
    __table_args__ = (Index("idx_summons_case", "case_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    template_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_multi_step: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    assembly_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    markdown: Mapped[str | None] = mapped_column(Text, nullable=True)
    html: Mapped[str | None] = mapped_column(Text, nullable=True)
    html_storage_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    pdf_storage_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    assembled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    case: Mapped["Case"] = relationship("Case", back_populates="summonses")
    sections: Mapped[list["SummonsSection"]] = relationship(
        "SummonsSection",
        back_populates="summons",
        cascade="all, delete-orphan",
        order_by="SummonsSection.step_order",
    )


class SummonsSection(Base):
    """One reviewable section of a multi-step summons."""

    __tablename__ = "summons_sections"
    __table_args__ = (
        UniqueConstraint("summons_id", "section_key", name="uq_summons_section_key"),
        Index("idx_summons_sections_order", "summons_id", "step_order"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    summons_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("summons.id", ondelete="CASCADE"), nullable=False
    )
    section_key: Mapped[str] = mapped_column(String(40), nullable=False)
    section_name: Mapped[str] = mapped_column(Text, nullable=False)
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    previous_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    generation_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    generation_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    generated_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    generation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warnings_json: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    summons: Mapped["Summons"] = relationship("Summons", back_populates="sections")


class CaseEvent(Base):
    """Case timeline event."""

    __tablename__ = "case_events"
    __table_args__ = (Index("idx_events_case", "case_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    actor_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    type: Mapped[str] = mapped_column(String(60), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    case: Mapped["Case"] = relationship("Case", back_populates="events")
