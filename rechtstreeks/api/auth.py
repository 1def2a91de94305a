"""Auth dependency.

The auth service is consumed as an authenticated user identity: the bearer
token is the user's UUID.
"""

import uuid
from typing import Annotated

from fastapi import Header, HTTPException, status

from rechtstreeks.db.context import RequestContext


async def get_current_context(
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from authorization header.

    Args:
        authorization: Authorization header ("Bearer <user_id>")

    Returns:
        RequestContext with user_id

    Raises:
        HTTPException: 401 if the header is missing or invalid
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[7:].strip()  # Strip "Bearer "

    try:
        return RequestContext(user_id=uuid.UUID(token))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token format (expected user id)",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
