"""Health check endpoints.

- /health: process liveness
- /healthz: readiness of what section generation and assembly depend on
"""

import asyncio
from typing import Any

import redis
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import func, select

from rechtstreeks.config import Settings, get_settings
from rechtstreeks.db.engine import get_async_engine
from rechtstreeks.db.models import SummonsSection
from rechtstreeks.models.sections import SectionStatus
from rechtstreeks.storage.files import LocalFileStorage

router = APIRouter()


async def check_db(settings: Settings) -> tuple[bool, str, int | None]:
    """Query the sections table; a missing table means migrations have not run.

    Returns:
        (is_ok, status_message, sections currently generating)
    """
    query = (
        select(func.count())
        .select_from(SummonsSection)
        .where(SummonsSection.status == SectionStatus.generating.value)
    )
    try:
        engine = get_async_engine()
        async with engine.connect() as conn:
            generating = (await conn.execute(query)).scalar_one()
        return (True, "ok", generating)
    except Exception as e:
        return (False, f"error: {type(e).__name__}", None)


async def check_redis(settings: Settings) -> tuple[bool, str]:
    """Ping the shared quota store.

    Returns:
        (is_ok, status_message)
    """
    if not settings.redis_url:
        return (True, "not_configured")

    try:
        client = redis.from_url(settings.redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        await asyncio.to_thread(client.ping)
        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


async def check_storage(settings: Settings) -> tuple[bool, str]:
    """Assembled PDFs are written here; a read-only root fails assembly."""
    try:
        await asyncio.to_thread(LocalFileStorage(settings.file_storage_dir).check_writable)
        return (True, "ok")
    except OSError as e:
        return (False, f"error: {type(e).__name__}")


def generator_mode(settings: Settings) -> str:
    api_key = settings.openai_api_key
    return "openai" if api_key and api_key.get_secret_value() else "stub"


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s."""
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz() -> dict[str, Any] | JSONResponse:
    """Readiness check.

    Returns:
        200 with component status if DB, Redis and file storage are usable
        503 if any of them fails
    """
    settings = get_settings()

    db_ok, db_status, generating = await check_db(settings)
    redis_ok, redis_status = await check_redis(settings)
    storage_ok, storage_status = await check_storage(settings)

    core_ok = db_ok and redis_ok and storage_ok
    response_body = {
        "status": "ok" if core_ok else "degraded",
        "components": {"db": db_status, "redis": redis_status, "storage": storage_status},
        "generator": generator_mode(settings),
        "sections_generating": generating,
    }

    if not core_ok:
        return JSONResponse(content=response_body, status_code=503)

    return response_body
