from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from duo_chat.domain.entities.user import User
from duo_chat.infrastructure.db.mappers import user as mapper
from duo_chat.infrastructure.db.models.user import UserModel


class UserReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: int) -> User | None:
        # current_connection_id changes through bulk UPDATEs; bypass the identity map.
        result = await self._session.get(UserModel, user_id, populate_existing=True)
        return mapper.model_to_entity(result) if result else None

    async def get_by_username(self, username: str) -> User | None:
        stmt = (
            select(UserModel)
            .where(UserModel.username == username)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None


class UserWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, username: str, created_at: datetime) -> User | None:
        stmt = (
            pg_insert(UserModel)
            .values(username=username, created_at=created_at)
            .on_conflict_do_nothing(index_elements=["username"])
            .returning(UserModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return mapper.model_to_entity(row) if row is not None else None
