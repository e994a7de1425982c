from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from eventro_chat.infrastructure.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

CHECK_TIMEOUT = 2.0


async def _check_postgres() -> None:
    async with AsyncSessionLocal() as session:
        await session.execute(text("SELECT 1"))


async def _check_redis(request: Request) -> None:
    await request.app.state.redis.ping()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness: the process is up and serving."""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    """Readiness: the message store and Redis both answer."""
    checks = {"postgres": _check_postgres(), "redis": _check_redis(request)}
    errors: list[str] = []
    for name, check in checks.items():
        try:
            async with asyncio.timeout(CHECK_TIMEOUT):
                await check
        except Exception as exc:  # noqa: BLE001
            errors.append(f"{name}: {exc!r}")

    if errors:
        logger.warning("Readiness check failed: %s", "; ".join(errors))
        return JSONResponse(status_code=503, content={"status": "unavailable", "errors": errors})
    return JSONResponse(content={"status": "ready"})
