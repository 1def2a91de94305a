"""Summons assembly - concatenate approved sections and render the final document.

Rendering runs inside the store's assembly transaction, on a consistent
snapshot of all sections.
"""

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from xml.sax.saxutils import escape

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from rechtstreeks.db.repositories import AssemblyBuilder, AssemblyOutput, CaseRecord, SectionRecord
from rechtstreeks.models.sections import (
    SECTION_ORDER,
    SectionKey,
    SectionStatus,
    canonical_sort_key,
    get_section_spec,
)
from rechtstreeks.storage.files import FileStorage
from rechtstreeks.workflow.errors import IncompleteWorkflow

TEMPLATE_DIR = Path(__file__).with_name("templates")

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "j2"]),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass(frozen=True)
class RenderedSection:
    """Approved section prepared for rendering."""

    key: str
    step_order: int
    label: str
    text: str

    @property
    def paragraphs(self) -> list[str]:
        return [block.strip() for block in self.text.split("\n\n") if block.strip()]


def outstanding_sections(sections: list[SectionRecord]) -> list[SectionKey]:
    """Canonical keys that are not approved, including missing ones."""
    approved = {s.section_key for s in sections if s.status == SectionStatus.approved}
    return [key for key in SECTION_ORDER if key not in approved]


def ordered_sections(sections: list[SectionRecord]) -> list[RenderedSection]:
    """Approved sections in canonical order, regardless of storage order.

    Raises:
        IncompleteWorkflow: If any canonical section is not approved
    """
    outstanding = outstanding_sections(sections)
    if outstanding:
        raise IncompleteWorkflow(outstanding)

    result = []
    for section in sorted(sections, key=lambda s: canonical_sort_key(s.section_key)):
        spec = get_section_spec(section.section_key)
        result.append(
            RenderedSection(
                key=section.section_key.value,
                step_order=spec.step_order,
                label=spec.label,
                text=section.generated_text or "",
            )
        )
    return result


def render_markdown(case: CaseRecord, sections: list[RenderedSection]) -> str:
    """Concatenate section texts as a markdown document."""
    lines = ["# Dagvaarding", "", f"**Zaak:** {case.title}"]
    if case.claimant_name:
        lines.append(f"**Eiser:** {case.claimant_name}")
    if case.counterparty_name:
        lines.append(f"**Gedaagde:** {case.counterparty_name}")
    lines.append("")

    for section in sections:
        lines.append(f"## {section.label}")
        lines.append("")
        lines.append(section.text.strip())
        lines.append("")

    return "\n".join(lines)


def render_html(case: CaseRecord, sections: list[RenderedSection], version: int) -> str:
    """Render the summons as structured HTML."""
    template = _env.get_template("summons.html.j2")
    return template.render(case=case, sections=sections, version=version)


def render_pdf(case: CaseRecord, sections: list[RenderedSection], version: int) -> bytes:
    """Render the summons as a printable A4 PDF."""
    pdf_buffer = BytesIO()
    doc = SimpleDocTemplate(
        pdf_buffer,
        pagesize=A4,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=24 * mm,
        bottomMargin=20 * mm,
        title=f"Dagvaarding - {case.title}",
    )

    styles = getSampleStyleSheet()
    title_style = styles["Title"].clone("SummonsTitle")
    title_style.alignment = 0
    heading_style = styles["Heading2"].clone("SummonsHeading")
    body_style = ParagraphStyle("SummonsBody", parent=styles["Normal"], fontSize=10.5, leading=15)
    meta_style = ParagraphStyle("SummonsMeta", parent=styles["Normal"], fontSize=9, leading=12)

    story = [Paragraph("Dagvaarding", title_style)]
    story.append(Paragraph(escape(case.title), body_style))
    if case.claimant_name:
        story.append(Paragraph(f"Eiser: {escape(case.claimant_name)}", meta_style))
    if case.counterparty_name:
        story.append(Paragraph(f"Gedaagde: {escape(case.counterparty_name)}", meta_style))
    story.append(Spacer(1, 6 * mm))

    for section in sections:
        story.append(Paragraph(escape(section.label), heading_style))
        for paragraph in section.paragraphs:
            story.append(Paragraph(escape(paragraph).replace("\n", "<br/>"), body_style))
        story.append(Spacer(1, 4 * mm))

    story.append(Paragraph(f"Versie {version}", meta_style))
    doc.build(story)
    return pdf_buffer.getvalue()


def build_assembly(case: CaseRecord, files: FileStorage) -> AssemblyBuilder:
    """Create the builder the store calls with its section snapshot."""

    def build(sections: list[SectionRecord], version: int) -> AssemblyOutput:
        ordered = ordered_sections(sections)
        summons_id = sections[0].summons_id

        markdown = render_markdown(case, ordered)
        html = render_html(case, ordered, version)
        pdf = render_pdf(case, ordered, version)

        prefix = f"summons/{summons_id}/v{version}"
        html_key = files.put(f"{prefix}.html", html.encode("utf-8"), "text/html")
        pdf_key = files.put(f"{prefix}.pdf", pdf, "application/pdf")

        return AssemblyOutput(
            markdown=markdown,
            html=html,
            html_storage_key=html_key,
            pdf_storage_key=pdf_key,
            section_keys=list(SECTION_ORDER),
        )

    return build
