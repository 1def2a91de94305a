"""Workflow error taxonomy.

Every error carries a stable ``code`` and a plain-language message that can be
shown to the user as-is. The API layer maps them to HTTP responses.
"""

from typing import Any

from rechtstreeks.models.sections import SectionKey, SectionStatus


class WorkflowError(Exception):
    """Base class for all recoverable workflow errors."""

    code = "workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Structured, user-displayable representation."""
        return {"error": self.code, "message": self.message}


class NotFound(WorkflowError):
    """Unknown case, summons or section id."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = str(entity_id)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "entity": self.entity, "id": self.entity_id}


class AccessDenied(WorkflowError):
    """Authenticated user does not own the case."""

    code = "access_denied"

    def __init__(self) -> None:
        super().__init__("Unauthorized access to case")


class InvalidTransition(WorkflowError):
    """Command issued from a state that does not permit it."""

    code = "invalid_transition"

    def __init__(
        self, section_key: SectionKey, command: str, current_status: SectionStatus
    ) -> None:
        super().__init__(
            f"Cannot {command} section {section_key.value} while it is {current_status.value}"
        )
        self.section_key = section_key
        self.command = command
        self.current_status = current_status

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "section_key": self.section_key.value,
            "command": self.command,
            "current_status": self.current_status.value,
        }


class GenerationFailure(WorkflowError):
    """AI generation errored or exceeded the timeout ceiling."""

    code = "generation_failure"

    def __init__(self, section_key: SectionKey, reason: str) -> None:
        super().__init__(f"Generating section {section_key.value} failed: {reason}")
        self.section_key = section_key
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "section_key": self.section_key.value}


class IncompleteWorkflow(WorkflowError):
    """Assembly attempted before every section was approved."""

    code = "incomplete_workflow"

    def __init__(self, outstanding: list[SectionKey]) -> None:
        keys = ", ".join(key.value for key in outstanding)
        super().__init__(f"All sections must be approved before assembly; outstanding: {keys}")
        self.outstanding = outstanding

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "outstanding": [key.value for key in self.outstanding]}


class GenerationQuotaExceeded(WorkflowError):
    """Too many generate or reopen attempts within a quota window."""

    code = "generation_quota_exceeded"

    def __init__(self, section_key: SectionKey, scope: str, retry_after: int) -> None:
        super().__init__(
            f"Too many generation requests; try section {section_key.value} again "
            f"in {retry_after} seconds"
        )
        self.section_key = section_key
        self.scope = scope
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "section_key": self.section_key.value,
            "scope": self.scope,
            "retry_after": self.retry_after,
        }
