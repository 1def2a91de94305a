"""Multi-step summons endpoints - section commands, SSE stream, assembly and PDF."""

import asyncio
import json
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse

from rechtstreeks.api.auth import get_current_context
from rechtstreeks.api.dependencies import get_generation_quota, get_workflow
from rechtstreeks.config import Settings, get_settings
from rechtstreeks.db.context import RequestContext
from rechtstreeks.middleware.ratelimit import GenerationQuota
from rechtstreeks.models.events import SectionSnapshotEvent
from rechtstreeks.models.sections import Section, SectionKey
from rechtstreeks.models.summons import (
    AssembledDocument,
    CreateSummonsRequest,
    RejectSectionRequest,
    SummonsView,
)
from rechtstreeks.workflow.errors import NotFound
from rechtstreeks.workflow.orchestrator import SummonsWorkflow, any_generating, section_view

router = APIRouter(prefix="/api/cases/{case_id}", tags=["summons"])

Ctx = Annotated[RequestContext, Depends(get_current_context)]
Workflow = Annotated[SummonsWorkflow, Depends(get_workflow)]
Quota = Annotated[GenerationQuota, Depends(get_generation_quota)]


def _parse_key(section_key: str) -> SectionKey:
    try:
        return SectionKey(section_key.upper())
    except ValueError as e:
        raise NotFound("Section", section_key) from e


@router.post("/summons", response_model=SummonsView, status_code=status.HTTP_201_CREATED)
async def create_summons(
    case_id: uuid.UUID,
    body: CreateSummonsRequest,
    ctx: Ctx,
    workflow: Workflow,
) -> SummonsView:
    """Initialize a multi-step summons with seven pending sections."""
    summons = await workflow.create_workflow(ctx, case_id, body.template_id)
    return await workflow.summons_view(summons.summons_id)


@router.get("/summons/{summons_id}", response_model=SummonsView)
async def get_summons(
    case_id: uuid.UUID, summons_id: uuid.UUID, ctx: Ctx, workflow: Workflow
) -> SummonsView:
    """Summons summary with ordered sections."""
    await workflow.authorize(ctx, case_id, summons_id)
    return await workflow.summons_view(summons_id)


@router.get("/summons/{summons_id}/sections", response_model=list[Section])
async def list_sections(
    case_id: uuid.UUID, summons_id: uuid.UUID, ctx: Ctx, workflow: Workflow
) -> list[Section]:
    """Sections in canonical order."""
    await workflow.authorize(ctx, case_id, summons_id)
    return [section_view(s) for s in await workflow.list_sections(summons_id)]


@router.get("/summons/{summons_id}/sections/stream")
async def stream_sections(
    case_id: uuid.UUID,
    summons_id: uuid.UUID,
    ctx: Ctx,
    workflow: Workflow,
    settings: Annotated[Settings, Depends(get_settings)],
) -> StreamingResponse:
    """Stream section snapshots via SSE until nothing is generating."""
    await workflow.authorize(ctx, case_id, summons_id)

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE events."""
        sequence = 0
        last_payload: str | None = None
        heartbeat_counter = 0

        while True:
            sections = await workflow.list_sections(summons_id)
            views = [section_view(s) for s in sections]
            payload = json.dumps([v.model_dump(mode="json") for v in views], sort_keys=True)

            if payload != last_payload:
                sequence += 1
                last_payload = payload
                yield SectionSnapshotEvent(
                    sequence=sequence, generating=any_generating(sections), sections=views
                ).to_sse()

            if not any_generating(sections):
                yield "event: done\n"
                yield f'data: {{"sequence": {sequence}}}\n\n'
                break

            heartbeat_counter += 1
            if heartbeat_counter % 4 == 0:
                yield "event: heartbeat\n"
                yield f'data: {{"ts": "{datetime.now(timezone.utc).isoformat()}"}}\n\n'

            await asyncio.sleep(settings.stream_poll_interval_seconds)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.post(
    "/summons/{summons_id}/sections/{section_key}/generate",
    response_model=Section,
    status_code=status.HTTP_202_ACCEPTED,
)
async def generate_section(
    case_id: uuid.UUID,
    summons_id: uuid.UUID,
    section_key: str,
    ctx: Ctx,
    workflow: Workflow,
    quota: Quota,
) -> Section:
    """Start generating a pending or rejected section."""
    await workflow.authorize(ctx, case_id, summons_id)
    key = _parse_key(section_key)
    quota.enforce(ctx, summons_id, key)
    section = await workflow.generate_section(summons_id, key, actor_user_id=ctx.user_id)
    return section_view(section)


@router.post(
    "/summons/{summons_id}/sections/{section_key}/reopen",
    response_model=Section,
    status_code=status.HTTP_202_ACCEPTED,
)
async def reopen_section(
    case_id: uuid.UUID,
    summons_id: uuid.UUID,
    section_key: str,
    ctx: Ctx,
    workflow: Workflow,
    quota: Quota,
) -> Section:
    """Regenerate an approved section."""
    await workflow.authorize(ctx, case_id, summons_id)
    key = _parse_key(section_key)
    quota.enforce(ctx, summons_id, key)
    section = await workflow.reopen_section(summons_id, key, actor_user_id=ctx.user_id)
    return section_view(section)


@router.post("/summons/{summons_id}/sections/{section_key}/approve", response_model=Section)
async def approve_section(
    case_id: uuid.UUID, summons_id: uuid.UUID, section_key: str, ctx: Ctx, workflow: Workflow
) -> Section:
    """Approve a section that is ready for review."""
    await workflow.authorize(ctx, case_id, summons_id)
    section = await workflow.approve_section(
        summons_id, _parse_key(section_key), actor_user_id=ctx.user_id
    )
    return section_view(section)


@router.post("/summons/{summons_id}/sections/{section_key}/reject", response_model=Section)
async def reject_section(
    case_id: uuid.UUID,
    summons_id: uuid.UUID,
    section_key: str,
    body: RejectSectionRequest,
    ctx: Ctx,
    workflow: Workflow,
) -> Section:
    """Reject a section with feedback for the next generation."""
    await workflow.authorize(ctx, case_id, summons_id)
    section = await workflow.reject_section(
        summons_id, _parse_key(section_key), body.feedback, actor_user_id=ctx.user_id
    )
    return section_view(section)


@router.post("/summons/{summons_id}/assemble", response_model=AssembledDocument)
async def assemble_summons(
    case_id: uuid.UUID, summons_id: uuid.UUID, ctx: Ctx, workflow: Workflow
) -> AssembledDocument:
    """Assemble the final summons from all approved sections."""
    await workflow.authorize(ctx, case_id, summons_id)
    return await workflow.assemble(summons_id, actor_user_id=ctx.user_id)


@router.get("/summons-v2/{summons_id}/pdf")
async def download_summons_pdf(
    case_id: uuid.UUID, summons_id: uuid.UUID, ctx: Ctx, workflow: Workflow
) -> Response:
    """PDF of the latest assembly."""
    await workflow.authorize(ctx, case_id, summons_id)
    pdf = await workflow.get_assembled_pdf(summons_id)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="dagvaarding-{summons_id}.pdf"'},
    )
