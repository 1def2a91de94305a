"""Request context for ownership enforcement."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Authenticated user identity.

    Used to enforce case ownership in every workflow operation.
    """

    user_id: UUID
