"""Section stream events - what the SSE endpoint pushes to clients."""

from pydantic import BaseModel

from rechtstreeks.models.sections import Section


class SectionSnapshotEvent(BaseModel):
    """Full ordered section list pushed whenever it changes."""

    sequence: int
    generating: bool
    sections: list[Section]

    def to_sse(self) -> str:
        """Format as a server-sent event frame."""
        return f"event: sections\ndata: {self.model_dump_json()}\n\n"
