"""Unit tests for section vocabulary and API models."""

import pytest

from rechtstreeks.models.events import SectionSnapshotEvent
from rechtstreeks.models.sections import (
    SECTION_ORDER,
    SECTION_SPECS,
    SectionKey,
    SectionStatus,
    canonical_sort_key,
    get_section_spec,
)
from rechtstreeks.models.summons import RejectSectionRequest


def test_canonical_order() -> None:
    assert SECTION_ORDER == (
        SectionKey.VORDERINGEN,
        SectionKey.FEITEN,
        SectionKey.RECHTSGRONDEN,
        SectionKey.VERLOOP,
        SectionKey.VERWEER,
        SectionKey.PETITUM,
        SectionKey.PRODUCTIES_SAMENVATTING,
    )
    assert [spec.step_order for spec in SECTION_SPECS] == list(range(1, 8))


def test_sorting_by_canonical_key_ignores_input_order() -> None:
    shuffled = [SectionKey.PETITUM, SectionKey.VORDERINGEN, SectionKey.VERLOOP]
    assert sorted(shuffled, key=canonical_sort_key) == [
        SectionKey.VORDERINGEN,
        SectionKey.VERLOOP,
        SectionKey.PETITUM,
    ]


def test_section_label() -> None:
    assert get_section_spec(SectionKey.VERLOOP).label == "4. Verloop van de Zaak"


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("draft", SectionStatus.ready_for_review),
        ("needs_changes", SectionStatus.rejected),
        ("ready_for_review", SectionStatus.ready_for_review),
        ("pending", SectionStatus.pending),
        ("approved", SectionStatus.approved),
    ],
)
def test_legacy_vocabulary_maps_to_canonical(label: str, expected: SectionStatus) -> None:
    assert SectionStatus.from_label(label) == expected


def test_unknown_status_label_raises() -> None:
    with pytest.raises(ValueError):
        SectionStatus.from_label("archived")


def test_reject_request_allows_empty_feedback() -> None:
    assert RejectSectionRequest().feedback == ""
    assert RejectSectionRequest(feedback="").feedback == ""


def test_snapshot_event_sse_frame() -> None:
    event = SectionSnapshotEvent(sequence=3, generating=False, sections=[])

    frame = event.to_sse()

    assert frame.startswith("event: sections\ndata: ")
    assert frame.endswith("\n\n")
    assert '"sequence":3' in frame
