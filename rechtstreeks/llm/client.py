"""Section generation clients with OpenAI integration.

Security: Reads API key from environment only, never hardcoded.
Provides deterministic stub when no key present for testing.
"""

import asyncio
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol

import yaml
from openai import AsyncOpenAI

from rechtstreeks.config import get_settings
from rechtstreeks.models.sections import SectionKey, get_section_spec
from rechtstreeks.models.summons import GeneratedSection

logger = logging.getLogger(__name__)

PROMPTS_PATH = Path(__file__).with_name("section_prompts.yaml")

MAX_SECTION_CHARS = 10000


@lru_cache
def load_section_prompts(path: Path = PROMPTS_PATH) -> dict[str, Any]:
    """Load the system prompt and per-section prompts.

    Raises:
        ValueError: If a canonical section has no prompt
    """
    with path.open(encoding="utf-8") as fh:
        prompts = yaml.safe_load(fh)

    missing = [key.value for key in SectionKey if key.value not in prompts.get("sections", {})]
    if missing:
        raise ValueError(f"Missing section prompts: {', '.join(missing)}")
    return prompts


class SectionGenerator(Protocol):
    """Protocol for section generator implementations."""

    async def generate(
        self,
        section_key: SectionKey,
        context: dict[str, Any],
        feedback: str | None = None,
    ) -> GeneratedSection:
        """Generate the text of one summons section.

        Args:
            section_key: Section to generate
            context: Case facts and approved earlier sections
            feedback: Reviewer feedback from a previous rejection, if any

        Returns:
            GeneratedSection with text and warnings

        Raises:
            Exception: Any failure; the caller reverts the section
        """
        ...


class DeterministicStubGenerator:
    """Deterministic stub generator for testing (no API key required)."""

    def __init__(self, delay_seconds: float = 0.0) -> None:
        self.delay_seconds = delay_seconds

    async def generate(
        self,
        section_key: SectionKey,
        context: dict[str, Any],
        feedback: str | None = None,
    ) -> GeneratedSection:
        """Generate deterministic stub text."""
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        spec = get_section_spec(section_key)
        version = int(context.get("generation_count", 0)) + 1
        title = context.get("title") or "onbekende zaak"

        lines = [
            f"Concepttekst voor het onderdeel {spec.name} in de zaak \"{title}\" (versie {version}).",
        ]
        if context.get("claimant_name") and context.get("counterparty_name"):
            lines.append(f"Eiser: {context['claimant_name']}. Gedaagde: {context['counterparty_name']}.")
        if feedback:
            lines.append(f"Verwerkte feedback: {feedback}")

        warnings: list[str] = []
        if section_key in (SectionKey.VORDERINGEN, SectionKey.PETITUM) and not context.get(
            "claim_amount"
        ):
            warnings.append("Vorderingsbedrag ontbreekt in de zaakgegevens")

        return GeneratedSection(text="\n".join(lines), warnings=warnings, source="stub")


class OpenAISectionGenerator:
    """OpenAI-backed generator for real section drafting."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", prompts: dict[str, Any] | None = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Model name to use (default: gpt-4o-mini for cost efficiency)
            prompts: Prompt set (default: bundled section_prompts.yaml)
        """
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.prompts = prompts or load_section_prompts()

    async def generate(
        self,
        section_key: SectionKey,
        context: dict[str, Any],
        feedback: str | None = None,
    ) -> GeneratedSection:
        """Generate section text using OpenAI API.

        Errors propagate; the workflow records them on the section.
        """
        system_prompt = f"{self.prompts['system']}\n\n{self.prompts['sections'][section_key.value]}"

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": self._build_context(context, feedback)},
            ],
            temperature=0.3,
            max_tokens=2000,
        )

        text = (response.choices[0].message.content or "").strip()
        if not text:
            raise ValueError("AI service returned an empty section")

        warnings: list[str] = []
        if len(text) > MAX_SECTION_CHARS:
            logger.warning(
                f"OpenAI section {section_key.value} unexpectedly large ({len(text)} chars), "
                f"truncating to {MAX_SECTION_CHARS}"
            )
            text = text[:MAX_SECTION_CHARS] + "\n\n[Ingekort]"
            warnings.append("Tekst ingekort tot maximale lengte")

        return GeneratedSection(text=text, warnings=warnings, source="openai")

    def _build_context(self, context: dict[str, Any], feedback: str | None) -> str:
        """Build user message from case context."""
        lines = ["## Zaakgegevens"]
        lines.append(f"- Titel: {context.get('title', '')}")
        if context.get("category"):
            lines.append(f"- Categorie: {context['category']}")
        if context.get("claim_amount"):
            lines.append(f"- Vorderingsbedrag: EUR {context['claim_amount']}")
        if context.get("claimant_name"):
            lines.append(f"- Eiser: {context['claimant_name']}")
        if context.get("counterparty_name"):
            lines.append(f"- Gedaagde: {context['counterparty_name']}")
        if context.get("description"):
            lines.append("")
            lines.append(context["description"])
        lines.append("")

        approved = context.get("approved_sections") or {}
        if approved:
            lines.append("## Goedgekeurde onderdelen")
            for key, text in approved.items():
                lines.append(f"### {key}")
                lines.append(text)
            lines.append("")

        if feedback:
            lines.append("## Feedback van de gebruiker op de vorige versie")
            lines.append(feedback)

        return "\n".join(lines)


def get_section_generator() -> SectionGenerator:
    """Factory function to get appropriate generator based on config.

    Returns:
        OpenAISectionGenerator if API key is configured, DeterministicStubGenerator otherwise
    """
    settings = get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI generator for summons sections")
        return OpenAISectionGenerator(
            api_key=api_key.get_secret_value(),
            model=settings.openai_model,
        )

    logger.warning("No OpenAI API key configured, using deterministic stub generator")
    return DeterministicStubGenerator(delay_seconds=settings.stub_generation_delay_seconds)
