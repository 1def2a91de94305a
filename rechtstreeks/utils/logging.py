"""Structured logging for section workflow transitions."""

import logging
from typing import Any
from uuid import UUID

from rechtstreeks.models.sections import SectionKey, SectionStatus

logger = logging.getLogger(__name__)


class StructuredWorkflowLogger:
    """Structured logger for section transitions and generation outcomes."""

    def log_transition(
        self,
        summons_id: UUID,
        section_key: SectionKey,
        command: str,
        from_status: SectionStatus,
        to_status: SectionStatus,
        actor_user_id: UUID | None = None,
    ) -> None:
        """Log an applied section command."""
        log_data: dict[str, Any] = {
            "summons_id": str(summons_id),
            "section_key": section_key.value,
            "command": command,
            "from_status": from_status.value,
            "to_status": to_status.value,
        }
        if actor_user_id:
            log_data["actor_user_id"] = str(actor_user_id)

        logger.info(
            f"Section {section_key.value}: {from_status.value} -> {to_status.value}",
            extra={"structured": log_data},
        )

    def log_generation(
        self,
        summons_id: UUID,
        section_key: SectionKey,
        generation_id: UUID,
        outcome: str,
        latency_ms: float,
        source: str | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log the outcome of one background generation."""
        log_data: dict[str, Any] = {
            "summons_id": str(summons_id),
            "section_key": section_key.value,
            "generation_id": str(generation_id),
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }
        if source:
            log_data["source"] = source
        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Section generation: {section_key.value} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
