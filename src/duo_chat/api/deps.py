"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from duo_chat.application.dto.principal import Principal
from duo_chat.application.ports.auth import TokenIssuer, TokenVerifier
from duo_chat.application.ports.notifier import Notifier
from duo_chat.application.uow import UnitOfWork, UoWFactory
from duo_chat.config import settings
from duo_chat.infrastructure.auth.hs256_issuer import HS256Issuer
from duo_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from duo_chat.infrastructure.db.session import AsyncSessionLocal
from duo_chat.infrastructure.db.uow import SqlAlchemyUoW, sqlalchemy_uow
from duo_chat.infrastructure.ws.hub import RealtimeHub

_bearer_scheme = HTTPBearer()


async def get_uow() -> AsyncIterator[UnitOfWork]:
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


def get_uow_factory() -> UoWFactory:
    """Short-lived units of work for WebSocket frames, one per frame."""
    return sqlalchemy_uow


def get_hub(conn: HTTPConnection) -> RealtimeHub:
    return conn.app.state.hub


def get_notifier(conn: HTTPConnection) -> Notifier:
    return conn.app.state.hub


NotifierDep = Annotated[Notifier, Depends(get_notifier)]


_verifier: TokenVerifier | None = None
_issuer: TokenIssuer | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)
    return _verifier


def get_issuer() -> TokenIssuer:
    global _issuer  # noqa: PLW0603
    if _issuer is None:
        _issuer = HS256Issuer(settings.JWT_SECRET, settings.JWT_ALGORITHM, settings.JWT_TTL_SECONDS)
    return _issuer


IssuerDep = Annotated[TokenIssuer, Depends(get_issuer)]


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_verifier)],
) -> Principal:
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
