"""Case endpoints - CRUD surface needed by the workflow, with progress projection."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, status

from rechtstreeks.api.auth import get_current_context
from rechtstreeks.api.dependencies import get_case_repository
from rechtstreeks.db.context import RequestContext
from rechtstreeks.db.repositories import CaseRecord, CaseRepository
from rechtstreeks.models.case import (
    CaseCreate,
    CaseEventView,
    CaseStatusUpdate,
    CaseView,
    UserRole,
)
from rechtstreeks.workflow.errors import AccessDenied, NotFound
from rechtstreeks.workflow.progress import project_case

router = APIRouter(prefix="/api/cases", tags=["cases"])


async def _owned_case(repo: CaseRepository, ctx: RequestContext, case_id: uuid.UUID) -> CaseRecord:
    case = await repo.get_case(case_id)
    if case is None:
        raise NotFound("Case", case_id)
    if case.owner_user_id != ctx.user_id:
        raise AccessDenied()
    return case


async def _to_view(repo: CaseRepository, case: CaseRecord) -> CaseView:
    counts = await repo.count_sub_entities(case.case_id)
    return CaseView(
        id=case.case_id,
        title=case.title,
        description=case.description,
        category=case.category,
        claim_amount=case.claim_amount,
        claimant_name=case.claimant_name,
        counterparty_name=case.counterparty_name,
        user_role=UserRole(case.user_role),
        status=case.status,
        created_at=case.created_at,
        updated_at=case.updated_at,
        progress=project_case(case, counts),
    )


@router.post("", response_model=CaseView, status_code=status.HTTP_201_CREATED)
async def create_case(
    body: CaseCreate,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    repo: Annotated[CaseRepository, Depends(get_case_repository)],
) -> CaseView:
    """Create a case owned by the current user."""
    case = await repo.create_case(body, ctx)
    await repo.append_event(case.case_id, ctx.user_id, "case_created", {"title": case.title})
    return await _to_view(repo, case)


@router.get("", response_model=list[CaseView])
async def list_cases(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    repo: Annotated[CaseRepository, Depends(get_case_repository)],
) -> list[CaseView]:
    """List the current user's cases, newest first."""
    return [await _to_view(repo, case) for case in await repo.list_cases(ctx)]


@router.get("/{case_id}", response_model=CaseView)
async def get_case(
    case_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    repo: Annotated[CaseRepository, Depends(get_case_repository)],
) -> CaseView:
    """Get a case with its progress projection."""
    case = await _owned_case(repo, ctx, case_id)
    return await _to_view(repo, case)


@router.patch("/{case_id}/status", response_model=CaseView)
async def update_case_status(
    case_id: uuid.UUID,
    body: CaseStatusUpdate,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    repo: Annotated[CaseRepository, Depends(get_case_repository)],
) -> CaseView:
    """Set the case status."""
    case = await _owned_case(repo, ctx, case_id)
    updated = await repo.update_status(case_id, body.status)
    if updated is None:
        raise NotFound("Case", case_id)

    await repo.append_event(
        case_id,
        ctx.user_id,
        "case_status_changed",
        {"from": case.status, "to": body.status.value},
    )
    return await _to_view(repo, updated)


@router.get("/{case_id}/timeline", response_model=list[CaseEventView])
async def get_case_timeline(
    case_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    repo: Annotated[CaseRepository, Depends(get_case_repository)],
) -> list[CaseEventView]:
    """Timeline events of a case, newest first."""
    await _owned_case(repo, ctx, case_id)
    return [
        CaseEventView(id=e.event_id, type=e.type, payload=e.payload, created_at=e.created_at)
        for e in await repo.list_events(case_id)
    ]
