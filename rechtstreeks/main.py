"""FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from rechtstreeks.api.dependencies import shutdown_workflow
from rechtstreeks.api.errors import register_exception_handlers
from rechtstreeks.api.routes.cases import router as cases_router
from rechtstreeks.api.routes.health import router as health_router
from rechtstreeks.api.routes.metrics import router as metrics_router
from rechtstreeks.api.routes.summons import router as summons_router
from rechtstreeks.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    logger.info("Shutting down; cancelling in-flight section generations")
    await shutdown_workflow()


app = FastAPI(title="Rechtstreeks API", version="0.1.0", lifespan=lifespan)

register_exception_handlers(app)

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(cases_router)
app.include_router(summons_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Rechtstreeks API", "version": "0.1.0"}


def main() -> None:
    """Serve the API with uvicorn in a single worker process."""
    settings = get_settings()
    uvicorn.run(
        "rechtstreeks.main:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=1,
        log_level="info",
    )


if __name__ == "__main__":
    main()
