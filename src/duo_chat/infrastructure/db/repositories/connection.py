from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from duo_chat.domain.entities.connection import Connection
from duo_chat.domain.value_objects.enums import ConnectionStatus
from duo_chat.infrastructure.db.mappers import connection as mapper
from duo_chat.infrastructure.db.models.connection import ConnectionModel
from duo_chat.infrastructure.db.models.user import UserModel


class _UserTaken(Exception):
    """A participant already holds a connection; unwinds the savepoint."""


class ConnectionReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, connection_id: int) -> Connection | None:
        result = await self._session.get(ConnectionModel, connection_id, populate_existing=True)
        return mapper.model_to_entity(result) if result else None

    async def get_active_for_user(self, user_id: int) -> Connection | None:
        stmt = (
            select(ConnectionModel)
            .where(
                or_(
                    ConnectionModel.user_a_id == user_id,
                    ConnectionModel.user_b_id == user_id,
                ),
                ConnectionModel.status == ConnectionStatus.CONNECTED,
            )
            .order_by(ConnectionModel.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None


class ConnectionWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_connected(
        self,
        user_a_id: int,
        user_b_id: int,
        connected_at: datetime,
    ) -> Connection | None:
        """Insert the connection and claim both users inside one savepoint.

        Each claim is ``UPDATE users ... WHERE current_connection_id IS NULL``.
        Concurrent claimers block on the row lock and re-check the predicate
        after the winner commits, so at most one of them sees rowcount 1.
        Users are claimed in id order so two acceptors never deadlock.
        """
        try:
            async with self._session.begin_nested():
                model = ConnectionModel(
                    user_a_id=user_a_id,
                    user_b_id=user_b_id,
                    status=ConnectionStatus.CONNECTED,
                    created_at=connected_at,
                    connected_at=connected_at,
                )
                self._session.add(model)
                await self._session.flush()

                for user_id in sorted((user_a_id, user_b_id)):
                    result = await self._session.execute(
                        update(UserModel)
                        .where(
                            UserModel.id == user_id,
                            UserModel.current_connection_id.is_(None),
                        )
                        .values(current_connection_id=model.id)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise _UserTaken
        except _UserTaken:
            return None
        return mapper.model_to_entity(model)

    async def end(
        self,
        connection_id: int,
        ended_by_user_id: int,
        reason: str,
        ended_at: datetime,
    ) -> bool:
        result = await self._session.execute(
            update(ConnectionModel)
            .where(
                ConnectionModel.id == connection_id,
                ConnectionModel.status == ConnectionStatus.CONNECTED,
            )
            .values(
                status=ConnectionStatus.DISCONNECTED,
                disconnected_at=ended_at,
                ended_by_user_id=ended_by_user_id,
                end_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        await self._session.execute(
            update(UserModel)
            .where(UserModel.current_connection_id == connection_id)
            .values(current_connection_id=None)
            .execution_options(synchronize_session=False)
        )
        return True
