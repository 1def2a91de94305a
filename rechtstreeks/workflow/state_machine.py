"""Section state machine - the transition table shared by all stores.

The table is pure data. Stores enforce it atomically by turning
``allowed_sources(command)`` into a conditional update on the status column.

    pending ──generate──▶ generating ──complete──▶ ready_for_review
    rejected ─generate──▶ generating                │        │
    approved ──reopen───▶ generating          approve│        │reject
                                                    ▼        ▼
                                               approved   rejected

A failed generation returns the section to the status it had before the
command (``previous_status``).
"""

from enum import Enum

from rechtstreeks.models.sections import SectionKey, SectionStatus
from rechtstreeks.workflow.errors import InvalidTransition


class SectionCommand(str, Enum):
    """Commands that move a section between states."""

    generate = "generate"
    reopen = "reopen"
    approve = "approve"
    reject = "reject"
    complete = "complete"
    fail = "fail"


_SOURCES: dict[SectionCommand, frozenset[SectionStatus]] = {
    SectionCommand.generate: frozenset({SectionStatus.pending, SectionStatus.rejected}),
    SectionCommand.reopen: frozenset({SectionStatus.approved}),
    SectionCommand.approve: frozenset({SectionStatus.ready_for_review}),
    SectionCommand.reject: frozenset({SectionStatus.ready_for_review}),
    SectionCommand.complete: frozenset({SectionStatus.generating}),
    SectionCommand.fail: frozenset({SectionStatus.generating}),
}

_TARGETS: dict[SectionCommand, SectionStatus] = {
    SectionCommand.generate: SectionStatus.generating,
    SectionCommand.reopen: SectionStatus.generating,
    SectionCommand.approve: SectionStatus.approved,
    SectionCommand.reject: SectionStatus.rejected,
    SectionCommand.complete: SectionStatus.ready_for_review,
}

# Commands a reviewer can issue; complete/fail belong to the generation task.
USER_COMMANDS: tuple[SectionCommand, ...] = (
    SectionCommand.generate,
    SectionCommand.reopen,
    SectionCommand.approve,
    SectionCommand.reject,
)


def allowed_sources(command: SectionCommand) -> frozenset[SectionStatus]:
    """Statuses from which the command may be applied."""
    return _SOURCES[command]


def can_apply(command: SectionCommand, current: SectionStatus) -> bool:
    """Check whether the command is permitted from the current status."""
    return current in _SOURCES[command]


def next_status(
    command: SectionCommand,
    current: SectionStatus,
    previous: SectionStatus | None = None,
    *,
    section_key: SectionKey,
) -> SectionStatus:
    """Compute the status after applying a command.

    Args:
        command: Command to apply
        current: Current status of the section
        previous: Status before the in-flight generation (used by ``fail``)
        section_key: Section the command targets (for error reporting)

    Returns:
        The resulting status

    Raises:
        InvalidTransition: If the command is not allowed from ``current``
    """
    if not can_apply(command, current):
        raise InvalidTransition(section_key, command.value, current)

    if command is SectionCommand.fail:
        return previous or SectionStatus.pending

    return _TARGETS[command]


def available_commands(status: SectionStatus) -> list[SectionCommand]:
    """User-facing commands enabled for a section in the given status."""
    return [command for command in USER_COMMANDS if status in _SOURCES[command]]
