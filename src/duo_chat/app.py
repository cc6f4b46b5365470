from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

from duo_chat.api.middleware.correlation_id import CorrelationIdMiddleware
from duo_chat.api.v1.routers import auth, connections, health, ws
from duo_chat.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from duo_chat.config import settings
from duo_chat.infrastructure.db.uow import sqlalchemy_uow
from duo_chat.infrastructure.ws.hub import RealtimeHub
from duo_chat.infrastructure.ws.registry import SessionRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    yield

    await app.state.hub.shutdown()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Duo Chat",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.hub = RealtimeHub(
        SessionRegistry(),
        sqlalchemy_uow,
        grace_seconds=settings.TRANSPORT_LOST_GRACE_SECONDS,
    )

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
    app.include_router(auth.router)
    app.include_router(connections.router)
    app.include_router(ws.router)

    return app


def _error(status_code: int, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": exc.detail, "code": exc.code})


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(ForbiddenError)
    async def _forbidden(req: Request, exc: ForbiddenError) -> JSONResponse:
        logger.warning("Forbidden %s %s: %s", req.method, req.url.path, exc.detail)
        return _error(403, exc)

    @app.exception_handler(ConflictError)
    async def _conflict(_req: Request, exc: ConflictError) -> JSONResponse:
        return _error(409, exc)

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return _error(422, exc)

    @app.exception_handler(TransientError)
    async def _transient(_req: Request, exc: TransientError) -> JSONResponse:
        return _error(503, exc)

    @app.exception_handler(DBAPIError)
    async def _db_error(req: Request, exc: DBAPIError) -> JSONResponse:
        logger.error("Database error on %s %s", req.method, req.url.path, exc_info=exc)
        return JSONResponse(
            status_code=503,
            content={"detail": "Store unavailable, try again", "code": "store_unavailable"},
        )
