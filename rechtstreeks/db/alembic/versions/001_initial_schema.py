"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates:
- cases, case_documents, analyses, letters
- summons, summons_sections
- case_events
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create all tables."""
    # cases table
    op.create_table(
        "cases",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("owner_user_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("claim_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("claimant_name", sa.Text(), nullable=True),
        sa.Column("counterparty_name", sa.Text(), nullable=True),
        sa.Column("user_role", sa.String(20), server_default="EISER", nullable=False),
        sa.Column("status", sa.String(40), server_default="NEW_INTAKE", nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_cases_owner", "cases", ["owner_user_id"])
    op.create_index("idx_cases_status", "cases", ["status"])
    op.create_index("idx_cases_created", "cases", ["created_at"])

    # case_documents table
    op.create_table(
        "case_documents",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("case_id", sa.Uuid(), nullable=False),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("storage_key", sa.Text(), nullable=False),
        sa.Column("mimetype", sa.String(100), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_documents_case", "case_documents", ["case_id"])

    # analyses table
    op.create_table(
        "analyses",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("case_id", sa.Uuid(), nullable=False),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("analysis_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_analyses_version", "analyses", ["case_id", "version"])

    # letters table
    op.create_table(
        "letters",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("case_id", sa.Uuid(), nullable=False),
        sa.Column("brief_type", sa.String(40), nullable=True),
        sa.Column("pdf_storage_key", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), server_default="draft", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_letters_case", "letters", ["case_id"])

    # summons table
    op.create_table(
        "summons",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("case_id", sa.Uuid(), nullable=False),
        sa.Column("template_id", sa.String(100), nullable=True),
        sa.Column("is_multi_step", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("assembly_version", sa.Integer(), server_default="0", nullable=False),
        sa.Column("markdown", sa.Text(), nullable=True),
        sa.Column("html", sa.Text(), nullable=True),
        sa.Column("html_storage_key", sa.Text(), nullable=True),
        sa.Column("pdf_storage_key", sa.Text(), nullable=True),
        sa.Column("assembled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_summons_case", "summons", ["case_id"])

    # summons_sections table
    op.create_table(
        "summons_sections",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("summons_id", sa.Uuid(), nullable=False),
        sa.Column("section_key", sa.String(40), nullable=False),
        sa.Column("section_name", sa.Text(), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("previous_status", sa.String(20), nullable=True),
        sa.Column("generation_id", sa.Uuid(), nullable=True),
        sa.Column("generation_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("generated_text", sa.Text(), nullable=True),
        sa.Column("user_feedback", sa.Text(), nullable=True),
        sa.Column("generation_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("warnings_json", sa.JSON(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["summons_id"], ["summons.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("summons_id", "section_key", name="uq_summons_section_key"),
    )
    op.create_index("idx_summons_sections_order", "summons_sections", ["summons_id", "step_order"])

    # case_events table
    op.create_table(
        "case_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("case_id", sa.Uuid(), nullable=False),
        sa.Column("actor_user_id", sa.Uuid(), nullable=False),
        sa.Column("type", sa.String(60), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_events_case", "case_events", ["case_id", "created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("case_events")
    op.drop_table("summons_sections")
    op.drop_table("summons")
    op.drop_table("letters")
    op.drop_table("analyses")
    op.drop_table("case_documents")
    op.drop_table("cases")
