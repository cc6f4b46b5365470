from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from types import TracebackType
from typing import AsyncIterator, Self

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from duo_chat.application.exceptions import StoreUnavailableError
from duo_chat.infrastructure.db.repositories.connection import (
    ConnectionReaderRepo,
    ConnectionWriterRepo,
)
from duo_chat.infrastructure.db.repositories.connection_request import (
    ConnectionRequestReaderRepo,
    ConnectionRequestWriterRepo,
)
from duo_chat.infrastructure.db.repositories.message import (
    MessageReaderRepo,
    MessageWriterRepo,
)
from duo_chat.infrastructure.db.repositories.outbox import OutboxWriterRepo
from duo_chat.infrastructure.db.repositories.user import UserReaderRepo, UserWriterRepo
from duo_chat.infrastructure.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


class SqlAlchemyUoW:
    """Concrete Unit-of-Work backed by a single AsyncSession.

    Used as an async context manager it rolls back on any error and turns
    driver-level failures (lost connection, refused connection, timeouts)
    into ``StoreUnavailableError`` so callers see one retryable error type.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.users = UserReaderRepo(session)
        self.users_w = UserWriterRepo(session)
        self.requests = ConnectionRequestReaderRepo(session)
        self.requests_w = ConnectionRequestWriterRepo(session)
        self.connections = ConnectionReaderRepo(session)
        self.connections_w = ConnectionWriterRepo(session)
        self.messages = MessageReaderRepo(session)
        self.messages_w = MessageWriterRepo(session)
        self.outbox = OutboxWriterRepo(session)

    async def flush(self) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            return
        try:
            await self.rollback()
        except (DBAPIError, OSError):
            logger.warning("Rollback failed after %s", exc_type.__name__, exc_info=True)
        if _is_unavailable(exc_val):
            raise StoreUnavailableError("Store unavailable, try again") from exc_val


def _is_unavailable(exc: BaseException | None) -> bool:
    if isinstance(exc, (InterfaceError, OperationalError, OSError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


@asynccontextmanager
async def sqlalchemy_uow() -> AsyncIterator[SqlAlchemyUoW]:
    """Open a session and yield a Unit-of-Work bound to it."""
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            yield uow
