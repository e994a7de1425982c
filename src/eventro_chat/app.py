from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from eventro_chat.api.deps import build_verifier
from eventro_chat.api.middleware.correlation_id import CorrelationIdMiddleware
from eventro_chat.api.v1.routers import conversations, health, messages, ws
from eventro_chat.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StoreTimeoutError,
    UnauthenticatedError,
    ValidationError,
)
from eventro_chat.config import settings
from eventro_chat.infrastructure.db.uow import open_uow
from eventro_chat.infrastructure.ws.hub import ChatHub

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[AppError], int] = {
    UnauthenticatedError: 401,
    NotFoundError: 404,
    ForbiddenError: 403,
    ConflictError: 409,
    ValidationError: 422,
    StoreTimeoutError: 504,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    await app.state.hub.start()

    yield

    await app.state.hub.stop()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app(*, hub: ChatHub | None = None) -> FastAPI:
    app = FastAPI(
        title="Eventro Chat Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.hub = hub or ChatHub(open_uow, build_verifier(settings), settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    async def _app_error(_req: Request, exc: AppError) -> JSONResponse:
        status_code = next(
            (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
            500,
        )
        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.detail, "code": exc.code},
            headers=headers,
        )

    app.add_exception_handler(AppError, _app_error)  # type: ignore[arg-type]
