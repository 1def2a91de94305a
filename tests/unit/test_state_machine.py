"""Unit tests for the section transition table."""

import pytest

from rechtstreeks.models.sections import SectionKey, SectionStatus
from rechtstreeks.workflow.errors import InvalidTransition
from rechtstreeks.workflow.state_machine import (
    SectionCommand,
    allowed_sources,
    available_commands,
    can_apply,
    next_status,
)

KEY = SectionKey.FEITEN


@pytest.mark.parametrize(
    ("command", "current", "expected"),
    [
        (SectionCommand.generate, SectionStatus.pending, SectionStatus.generating),
        (SectionCommand.generate, SectionStatus.rejected, SectionStatus.generating),
        (SectionCommand.reopen, SectionStatus.approved, SectionStatus.generating),
        (SectionCommand.approve, SectionStatus.ready_for_review, SectionStatus.approved),
        (SectionCommand.reject, SectionStatus.ready_for_review, SectionStatus.rejected),
        (SectionCommand.complete, SectionStatus.generating, SectionStatus.ready_for_review),
    ],
)
def test_allowed_transitions(
    command: SectionCommand, current: SectionStatus, expected: SectionStatus
) -> None:
    """Each permitted command yields its target status."""
    assert next_status(command, current, section_key=KEY) == expected


@pytest.mark.parametrize(
    ("command", "current"),
    [
        (SectionCommand.generate, SectionStatus.generating),
        (SectionCommand.generate, SectionStatus.ready_for_review),
        (SectionCommand.generate, SectionStatus.approved),
        (SectionCommand.approve, SectionStatus.approved),
        (SectionCommand.approve, SectionStatus.pending),
        (SectionCommand.reject, SectionStatus.rejected),
        (SectionCommand.reopen, SectionStatus.ready_for_review),
        (SectionCommand.complete, SectionStatus.pending),
    ],
)
def test_forbidden_transitions_raise(command: SectionCommand, current: SectionStatus) -> None:
    """Commands from a disallowed status raise InvalidTransition."""
    with pytest.raises(InvalidTransition) as exc_info:
        next_status(command, current, section_key=KEY)

    assert exc_info.value.section_key == KEY
    assert exc_info.value.current_status == current
    assert exc_info.value.command == command.value


def test_nothing_leaves_generating_except_completion_or_failure() -> None:
    """Only complete and fail apply to a generating section."""
    commands = [c for c in SectionCommand if can_apply(c, SectionStatus.generating)]
    assert set(commands) == {SectionCommand.complete, SectionCommand.fail}


def test_fail_reverts_to_previous_status() -> None:
    """Fail returns to the status before generation."""
    assert (
        next_status(SectionCommand.fail, SectionStatus.generating, SectionStatus.rejected, section_key=KEY)
        == SectionStatus.rejected
    )
    assert (
        next_status(SectionCommand.fail, SectionStatus.generating, SectionStatus.approved, section_key=KEY)
        == SectionStatus.approved
    )


def test_fail_without_previous_falls_back_to_pending() -> None:
    assert next_status(SectionCommand.fail, SectionStatus.generating, section_key=KEY) == SectionStatus.pending


def test_allowed_sources() -> None:
    assert allowed_sources(SectionCommand.generate) == {SectionStatus.pending, SectionStatus.rejected}
    assert allowed_sources(SectionCommand.reopen) == {SectionStatus.approved}


def test_available_commands_per_status() -> None:
    """User-facing commands enabled in each status."""
    assert available_commands(SectionStatus.pending) == [SectionCommand.generate]
    assert available_commands(SectionStatus.generating) == []
    assert available_commands(SectionStatus.ready_for_review) == [
        SectionCommand.approve,
        SectionCommand.reject,
    ]
    assert available_commands(SectionStatus.approved) == [SectionCommand.reopen]
    assert available_commands(SectionStatus.rejected) == [SectionCommand.generate]
