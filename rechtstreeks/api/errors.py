"""Map workflow errors to HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from rechtstreeks.workflow.errors import (
    AccessDenied,
    GenerationFailure,
    GenerationQuotaExceeded,
    IncompleteWorkflow,
    InvalidTransition,
    NotFound,
    WorkflowError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[WorkflowError], int] = {
    NotFound: status.HTTP_404_NOT_FOUND,
    AccessDenied: status.HTTP_403_FORBIDDEN,
    InvalidTransition: status.HTTP_409_CONFLICT,
    IncompleteWorkflow: status.HTTP_409_CONFLICT,
    GenerationFailure: status.HTTP_502_BAD_GATEWAY,
    GenerationQuotaExceeded: status.HTTP_429_TOO_MANY_REQUESTS,
}


def status_for(exc: WorkflowError) -> int:
    """HTTP status code for a workflow error."""
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS:
            return ERROR_STATUS[error_type]
    return status.HTTP_400_BAD_REQUEST


async def workflow_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a WorkflowError as its structured body."""
    if not isinstance(exc, WorkflowError):
        raise exc
    code = status_for(exc)
    logger.info(
        f"{request.method} {request.url.path} -> {code} {exc.code}",
        extra={"structured": {"path": request.url.path, "status": code, **exc.to_dict()}},
    )
    headers = None
    if isinstance(exc, GenerationQuotaExceeded):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=code, content=exc.to_dict(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, workflow_error_handler)
