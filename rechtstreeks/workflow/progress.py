"""Case progress projector - derives step, progress and gating from case status.

All lookups are total: unknown or legacy status strings fall back to step 1.
"""

from rechtstreeks.db.repositories import CaseRecord, SubEntityCounts
from rechtstreeks.models.case import (
    CASE_STATUS_METADATA,
    TOTAL_STEPS,
    CaseProgress,
    CaseStatus,
    StatusMeta,
)


def _lookup(status: str | None) -> StatusMeta | None:
    if status is None:
        return None
    try:
        return CASE_STATUS_METADATA[CaseStatus(status)]
    except ValueError:
        return None


def step_number(status: str | None) -> int:
    """Procedural step (1-9) for a case status."""
    meta = _lookup(status)
    return meta.step if meta else 1


def progress(status: str | None) -> int:
    """Progress percentage (0-100) for a case status."""
    return round(step_number(status) / TOTAL_STEPS * 100)


def status_label(status: str | None) -> str:
    """Dutch display label; unknown statuses are shown as-is."""
    meta = _lookup(status)
    if meta:
        return meta.label
    return status or CASE_STATUS_METADATA[CaseStatus.NEW_INTAKE].label


def next_action(status: str | None) -> str:
    """Label of the next action the user should take."""
    meta = _lookup(status) or CASE_STATUS_METADATA[CaseStatus.NEW_INTAKE]
    return meta.next_action


def is_before(status: str | None, target: CaseStatus) -> bool:
    """Whether ``status`` lies earlier in the lifecycle than ``target``.

    Statuses sharing a step are ordered by declaration order so that the
    lifecycle never moves backwards.
    """
    order = list(CaseStatus)
    try:
        current = CaseStatus(status) if status else CaseStatus.NEW_INTAKE
    except ValueError:
        return True
    return order.index(current) < order.index(target)


def project_case(case: CaseRecord, counts: SubEntityCounts) -> CaseProgress:
    """Build the full progress projection for a case.

    Args:
        case: Case record
        counts: Presence counts of documents, analyses, letters and summonses

    Returns:
        CaseProgress with step, percentage, labels and gating flags
    """
    return CaseProgress(
        status=case.status,
        step=step_number(case.status),
        progress=progress(case.status),
        label=status_label(case.status),
        next_action=next_action(case.status),
        can_analyze=counts.documents > 0,
        can_draft_letter=counts.analyses > 0,
        can_start_summons=counts.analyses > 0,
        has_assembled_summons=counts.assembled_summonses > 0,
    )
