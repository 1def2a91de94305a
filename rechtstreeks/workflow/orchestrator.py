"""Summons workflow orchestrator.

Sequences the seven sections of a multi-step summons, applies guarded
commands through the repository compare-and-set methods and runs AI
generation as background tasks.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from rechtstreeks.db.context import RequestContext
from rechtstreeks.db.repositories import (
    CaseRepository,
    CaseRecord,
    SectionRecord,
    SummonsRecord,
    SummonsRepository,
)
from rechtstreeks.llm.client import SectionGenerator
from rechtstreeks.models.case import CaseStatus
from rechtstreeks.models.sections import (
    SECTION_SPECS,
    SECTION_STATUS_LABELS,
    Section,
    SectionKey,
    SectionStatus,
    canonical_sort_key,
)
from rechtstreeks.models.summons import AssembledDocument, SummonsView, WorkflowStatus
from rechtstreeks.storage.files import FileStorage
from rechtstreeks.utils.logging import StructuredWorkflowLogger
from rechtstreeks.utils.metrics import PrometheusWorkflowMetrics
from rechtstreeks.workflow.assembly import build_assembly
from rechtstreeks.workflow.errors import (
    AccessDenied,
    GenerationFailure,
    IncompleteWorkflow,
    InvalidTransition,
    NotFound,
)
from rechtstreeks.workflow.progress import is_before
from rechtstreeks.workflow.state_machine import SectionCommand, allowed_sources, next_status

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def section_view(record: SectionRecord) -> Section:
    """Convert a section record to its API representation."""
    return Section(
        id=record.section_id,
        summons_id=record.summons_id,
        section_key=record.section_key,
        section_name=record.section_name,
        step_order=record.step_order,
        status=record.status,
        status_label=SECTION_STATUS_LABELS[record.status],
        generated_text=record.generated_text,
        user_feedback=record.user_feedback,
        generation_count=record.generation_count,
        warnings=record.warnings,
        last_error=record.last_error,
        updated_at=record.updated_at,
    )


def workflow_status(sections: list[SectionRecord]) -> WorkflowStatus:
    """``complete`` iff every canonical section is approved."""
    approved = {s.section_key for s in sections if s.status == SectionStatus.approved}
    return "complete" if len(approved) == len(SECTION_SPECS) else "in_progress"


def any_generating(sections: list[SectionRecord]) -> bool:
    return any(s.status == SectionStatus.generating for s in sections)


class SummonsWorkflow:
    """Multi-step summons workflow.

    Commands return as soon as the new status is persisted. Generation
    results are written later by a background task guarded by the
    generation token, so a late result of a superseded generation is dropped.
    """

    def __init__(
        self,
        cases: CaseRepository,
        summons: SummonsRepository,
        generator: SectionGenerator,
        files: FileStorage,
        *,
        metrics: PrometheusWorkflowMetrics | None = None,
        workflow_logger: StructuredWorkflowLogger | None = None,
        generation_timeout_seconds: float = 300.0,
        stale_grace_seconds: float = 60.0,
    ) -> None:
        self._cases = cases
        self._summons = summons
        self._generator = generator
        self._files = files
        self._metrics = metrics or PrometheusWorkflowMetrics()
        self._log = workflow_logger or StructuredWorkflowLogger()
        self.generation_timeout_seconds = generation_timeout_seconds
        self.stale_grace_seconds = stale_grace_seconds
        self._tasks: dict[tuple[uuid.UUID, SectionKey], asyncio.Task[None]] = {}

    # Access -----------------------------------------------------------------

    async def authorize(
        self,
        ctx: RequestContext,
        case_id: uuid.UUID,
        summons_id: uuid.UUID | None = None,
    ) -> tuple[CaseRecord, SummonsRecord | None]:
        """Resolve the case (and summons) and check ownership.

        Raises:
            NotFound: Unknown case, or summons not part of the case
            AccessDenied: Case belongs to another user
        """
        case = await self._cases.get_case(case_id)
        if case is None:
            raise NotFound("Case", case_id)
        if case.owner_user_id != ctx.user_id:
            raise AccessDenied()

        if summons_id is None:
            return case, None

        summons = await self._summons.get_summons(summons_id)
        if summons is None or summons.case_id != case_id:
            raise NotFound("Summons", summons_id)
        return case, summons

    # Queries ----------------------------------------------------------------

    async def create_workflow(
        self, ctx: RequestContext, case_id: uuid.UUID, template_id: str | None = None
    ) -> SummonsRecord:
        """Create a multi-step summons with seven pending sections."""
        await self.authorize(ctx, case_id)
        summons = await self._summons.create_summons(
            case_id, template_id=template_id, sections=SECTION_SPECS
        )
        await self._cases.append_event(
            case_id,
            ctx.user_id,
            "summons_created",
            {"summons_id": str(summons.summons_id), "template_id": template_id},
        )
        logger.info(
            f"Created multi-step summons {summons.summons_id}",
            extra={"structured": {"case_id": str(case_id), "summons_id": str(summons.summons_id)}},
        )
        return summons

    async def list_sections(self, summons_id: uuid.UUID) -> list[SectionRecord]:
        """Sections in canonical order, after reverting stale generations."""
        sections = await self._summons.list_sections(summons_id)
        if await self._expire_stale_generations(summons_id, sections):
            sections = await self._summons.list_sections(summons_id)
        return sorted(sections, key=lambda s: canonical_sort_key(s.section_key))

    async def summons_view(self, summons_id: uuid.UUID) -> SummonsView:
        """Summons summary with sections and derived status."""
        summons = await self._require_summons(summons_id)
        sections = await self.list_sections(summons_id)
        return SummonsView(
            id=summons.summons_id,
            case_id=summons.case_id,
            template_id=summons.template_id,
            is_multi_step=summons.is_multi_step,
            status=workflow_status(sections),
            assembly_version=summons.assembly_version,
            pdf_available=summons.pdf_storage_key is not None,
            assembled_at=summons.assembled_at,
            sections=[section_view(s) for s in sections],
        )

    # Commands ---------------------------------------------------------------

    async def generate_section(
        self, summons_id: uuid.UUID, key: SectionKey, *, actor_user_id: uuid.UUID
    ) -> SectionRecord:
        """Start generating a pending or rejected section.

        Raises:
            InvalidTransition: Section is not pending or rejected
        """
        return await self._start_generation(summons_id, key, SectionCommand.generate, actor_user_id)

    async def reopen_section(
        self, summons_id: uuid.UUID, key: SectionKey, *, actor_user_id: uuid.UUID
    ) -> SectionRecord:
        """Regenerate an approved section.

        Raises:
            InvalidTransition: Section is not approved
        """
        return await self._start_generation(summons_id, key, SectionCommand.reopen, actor_user_id)

    async def approve_section(
        self, summons_id: uuid.UUID, key: SectionKey, *, actor_user_id: uuid.UUID
    ) -> SectionRecord:
        """Approve a section that is ready for review."""
        return await self._review(summons_id, key, SectionCommand.approve, actor_user_id)

    async def reject_section(
        self,
        summons_id: uuid.UUID,
        key: SectionKey,
        feedback: str,
        *,
        actor_user_id: uuid.UUID,
    ) -> SectionRecord:
        """Reject a section that is ready for review, storing the feedback."""
        if not feedback.strip():
            logger.info(
                f"Section {key.value} rejected without feedback",
                extra={"structured": {"summons_id": str(summons_id), "section_key": key.value}},
            )
        return await self._review(
            summons_id, key, SectionCommand.reject, actor_user_id, feedback=feedback
        )

    async def assemble(
        self, summons_id: uuid.UUID, *, actor_user_id: uuid.UUID
    ) -> AssembledDocument:
        """Assemble the final summons from all approved sections.

        Raises:
            IncompleteWorkflow: If any section is not approved
        """
        summons = await self._require_summons(summons_id)
        case = await self._cases.get_case(summons.case_id)
        if case is None:
            raise NotFound("Case", summons.case_id)

        try:
            record = await self._summons.assemble(summons_id, build_assembly(case, self._files))
        except IncompleteWorkflow as e:
            self._metrics.inc_assembly("incomplete")
            logger.info(
                f"Assembly of {summons_id} refused",
                extra={"structured": {"summons_id": str(summons_id), "outstanding": [k.value for k in e.outstanding]}},
            )
            raise
        self._metrics.inc_assembly("success")

        await self._cases.append_event(
            case.case_id,
            actor_user_id,
            "summons_assembled",
            {"summons_id": str(summons_id), "version": record.assembly_version},
        )
        await self._advance_case(case.case_id, actor_user_id)

        logger.info(
            f"Assembled summons {summons_id} version {record.assembly_version}",
            extra={"structured": {"summons_id": str(summons_id), "version": record.assembly_version}},
        )
        return AssembledDocument(
            summons_id=record.summons_id,
            case_id=record.case_id,
            version=record.assembly_version,
            section_keys=[spec.key for spec in SECTION_SPECS],
            markdown=record.markdown or "",
            html=record.html or "",
            html_storage_key=record.html_storage_key or "",
            pdf_storage_key=record.pdf_storage_key or "",
            assembled_at=record.assembled_at or _now(),
        )

    async def get_assembled_pdf(self, summons_id: uuid.UUID) -> bytes:
        """PDF bytes of the latest assembly.

        Raises:
            NotFound: If the summons was never assembled
        """
        summons = await self._require_summons(summons_id)
        if not summons.pdf_storage_key:
            raise NotFound("Assembled summons PDF", summons_id)
        try:
            return await asyncio.to_thread(self._files.get, summons.pdf_storage_key)
        except FileNotFoundError as e:
            raise NotFound("Assembled summons PDF", summons_id) from e

    # Background generation --------------------------------------------------

    async def drain(self) -> None:
        """Wait for all in-flight generations to finish."""
        while True:
            pending = [task for task in self._tasks.values() if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight generations; their sections revert."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _start_generation(
        self,
        summons_id: uuid.UUID,
        key: SectionKey,
        command: SectionCommand,
        actor_user_id: uuid.UUID,
    ) -> SectionRecord:
        current = await self._require_section(summons_id, key)
        next_status(command, current.status, section_key=key)

        generation_id = uuid.uuid4()
        started = await self._summons.begin_generation(
            summons_id,
            key,
            allowed=allowed_sources(command),
            generation_id=generation_id,
            started_at=_now(),
        )
        if started is None:
            # Lost the race against a concurrent command
            latest = await self._require_section(summons_id, key)
            raise InvalidTransition(key, command.value, latest.status)

        previous = started.previous_status or current.status
        try:
            context = await self._build_context(summons_id, started)
            feedback = started.user_feedback if previous == SectionStatus.rejected else None
            task = asyncio.create_task(
                self._run_generation(summons_id, key, generation_id, context, feedback)
            )
        except Exception as e:
            # Nothing owns the generation token yet
            await self._summons.abort_generation(
                summons_id, key, generation_id=generation_id, error=f"{type(e).__name__}: {e}"
            )
            raise
        self._track(summons_id, key, task)

        self._log.log_transition(
            summons_id, key, command.value, previous, started.status, actor_user_id
        )
        self._metrics.inc_transition(key.value, command.value)

        summons = await self._require_summons(summons_id)
        await self._cases.append_event(
            summons.case_id,
            actor_user_id,
            "section_reopened" if command is SectionCommand.reopen else "section_generation_started",
            {"summons_id": str(summons_id), "section_key": key.value},
        )
        return started

    async def _run_generation(
        self,
        summons_id: uuid.UUID,
        key: SectionKey,
        generation_id: uuid.UUID,
        context: dict[str, Any],
        feedback: str | None,
    ) -> None:
        """Execute one generation in a background task."""
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._generator.generate(key, context, feedback),
                timeout=self.generation_timeout_seconds,
            )
        except asyncio.CancelledError:
            await self._summons.abort_generation(
                summons_id, key, generation_id=generation_id, error="Generation cancelled"
            )
            raise
        except asyncio.TimeoutError:
            failure = GenerationFailure(
                key, f"timed out after {self.generation_timeout_seconds:g} seconds"
            )
            await self._fail_generation(summons_id, generation_id, failure, start)
            return
        except Exception as e:
            failure = GenerationFailure(key, str(e) or type(e).__name__)
            await self._fail_generation(summons_id, generation_id, failure, start)
            return

        latency = time.perf_counter() - start
        finished = await self._summons.finish_generation(
            summons_id,
            key,
            generation_id=generation_id,
            text=result.text,
            warnings=result.warnings,
        )
        outcome = "success" if finished else "superseded"
        self._metrics.record_generation(key.value, outcome, latency)
        self._log.log_generation(
            summons_id, key, generation_id, outcome, latency * 1000, source=result.source
        )

    async def _fail_generation(
        self,
        summons_id: uuid.UUID,
        generation_id: uuid.UUID,
        failure: GenerationFailure,
        start: float,
    ) -> None:
        latency = time.perf_counter() - start
        reverted = await self._summons.abort_generation(
            summons_id, failure.section_key, generation_id=generation_id, error=failure.message
        )
        outcome = "failure" if reverted else "superseded"
        self._metrics.record_generation(failure.section_key.value, outcome, latency)
        self._log.log_generation(
            summons_id,
            failure.section_key,
            generation_id,
            outcome,
            latency * 1000,
            error_reason=failure.reason,
        )

    def _track(self, summons_id: uuid.UUID, key: SectionKey, task: asyncio.Task[None]) -> None:
        slot = (summons_id, key)
        self._tasks[slot] = task

        def _done(finished: asyncio.Task[None]) -> None:
            if self._tasks.get(slot) is finished:
                del self._tasks[slot]
            if not finished.cancelled() and finished.exception() is not None:
                logger.error(
                    f"Generation task for {key.value} crashed",
                    exc_info=finished.exception(),
                    extra={"structured": {"summons_id": str(summons_id), "section_key": key.value}},
                )

        task.add_done_callback(_done)

    async def _expire_stale_generations(
        self, summons_id: uuid.UUID, sections: list[SectionRecord]
    ) -> bool:
        """Revert sections stuck in generating past the timeout plus grace."""
        ceiling = timedelta(seconds=self.generation_timeout_seconds + self.stale_grace_seconds)
        now = _now()
        expired = False

        for section in sections:
            if section.status != SectionStatus.generating or section.generation_id is None:
                continue
            if section.generation_started_at is None or now - section.generation_started_at <= ceiling:
                continue

            reverted = await self._summons.abort_generation(
                summons_id,
                section.section_key,
                generation_id=section.generation_id,
                error="Generation did not complete in time",
            )
            if reverted:
                expired = True
                logger.warning(
                    f"Reverted stale generation of {section.section_key.value}",
                    extra={
                        "structured": {
                            "summons_id": str(summons_id),
                            "section_key": section.section_key.value,
                            "generation_id": str(section.generation_id),
                            "reverted_to": reverted.status.value,
                        }
                    },
                )
        return expired

    # Helpers ----------------------------------------------------------------

    async def _review(
        self,
        summons_id: uuid.UUID,
        key: SectionKey,
        command: SectionCommand,
        actor_user_id: uuid.UUID,
        feedback: str | None = None,
    ) -> SectionRecord:
        current = await self._require_section(summons_id, key)
        target = next_status(command, current.status, section_key=key)

        updated = await self._summons.set_review_status(
            summons_id, key, allowed=allowed_sources(command), status=target, feedback=feedback
        )
        if updated is None:
            latest = await self._require_section(summons_id, key)
            raise InvalidTransition(key, command.value, latest.status)

        self._log.log_transition(summons_id, key, command.value, current.status, target, actor_user_id)
        self._metrics.inc_transition(key.value, command.value)

        summons = await self._require_summons(summons_id)
        payload: dict[str, Any] = {"summons_id": str(summons_id), "section_key": key.value}
        if feedback is not None:
            payload["feedback"] = feedback
        await self._cases.append_event(
            summons.case_id,
            actor_user_id,
            "section_approved" if command is SectionCommand.approve else "section_rejected",
            payload,
        )
        return updated

    async def _build_context(self, summons_id: uuid.UUID, section: SectionRecord) -> dict[str, Any]:
        """Case facts plus approved earlier sections for the generator."""
        summons = await self._require_summons(summons_id)
        case = await self._cases.get_case(summons.case_id)
        sections = await self._summons.list_sections(summons_id)

        approved = {
            s.section_key.value: s.generated_text or ""
            for s in sorted(sections, key=lambda s: s.step_order)
            if s.status == SectionStatus.approved and s.step_order < section.step_order
        }
        context: dict[str, Any] = {
            "section_key": section.section_key.value,
            "section_name": section.section_name,
            "generation_count": section.generation_count,
            "approved_sections": approved,
        }
        if case is not None:
            context.update(
                title=case.title,
                description=case.description,
                category=case.category,
                claim_amount=str(case.claim_amount) if case.claim_amount is not None else None,
                claimant_name=case.claimant_name,
                counterparty_name=case.counterparty_name,
                user_role=case.user_role,
            )
        return context

    async def _advance_case(self, case_id: uuid.UUID, actor_user_id: uuid.UUID) -> None:
        """Move the case to SUMMONS_DRAFTED unless it is already further along."""
        case = await self._cases.get_case(case_id)
        if case is None or not is_before(case.status, CaseStatus.SUMMONS_DRAFTED):
            return
        await self._cases.update_status(case_id, CaseStatus.SUMMONS_DRAFTED)
        await self._cases.append_event(
            case_id,
            actor_user_id,
            "case_status_changed",
            {"from": case.status, "to": CaseStatus.SUMMONS_DRAFTED.value},
        )

    async def _require_summons(self, summons_id: uuid.UUID) -> SummonsRecord:
        summons = await self._summons.get_summons(summons_id)
        if summons is None:
            raise NotFound("Summons", summons_id)
        return summons

    async def _require_section(self, summons_id: uuid.UUID, key: SectionKey) -> SectionRecord:
        section = await self._summons.get_section(summons_id, key)
        if section is None:
            raise NotFound("Section", f"{summons_id}/{key.value}")
        return section
