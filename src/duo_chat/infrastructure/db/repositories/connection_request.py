from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from duo_chat.domain.entities.connection_request import ConnectionRequest
from duo_chat.domain.value_objects.enums import RequestStatus
from duo_chat.infrastructure.db.mappers import connection_request as mapper
from duo_chat.infrastructure.db.models.connection_request import ConnectionRequestModel
from duo_chat.infrastructure.db.models.user import UserModel


class ConnectionRequestReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, request_id: int) -> ConnectionRequest | None:
        result = await self._session.get(ConnectionRequestModel, request_id, populate_existing=True)
        return mapper.model_to_entity(result) if result else None

    async def find_pending(
        self,
        from_user_id: int,
        to_username: str,
    ) -> ConnectionRequest | None:
        stmt = select(ConnectionRequestModel).where(
            ConnectionRequestModel.from_user_id == from_user_id,
            ConnectionRequestModel.to_username == to_username,
            ConnectionRequestModel.status == RequestStatus.PENDING,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_pending_for(self, to_username: str) -> list[ConnectionRequest]:
        stmt = (
            select(ConnectionRequestModel, UserModel.username)
            .join(UserModel, UserModel.id == ConnectionRequestModel.from_user_id)
            .where(
                ConnectionRequestModel.to_username == to_username,
                ConnectionRequestModel.status == RequestStatus.PENDING,
            )
            .order_by(ConnectionRequestModel.created_at.asc(), ConnectionRequestModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(model, from_username) for model, from_username in result.all()]


class ConnectionRequestWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_pending(
        self,
        from_user_id: int,
        to_username: str,
        created_at: datetime,
    ) -> ConnectionRequest | None:
        stmt = (
            pg_insert(ConnectionRequestModel)
            .values(
                from_user_id=from_user_id,
                to_username=to_username,
                status=RequestStatus.PENDING,
                created_at=created_at,
            )
            .on_conflict_do_nothing(
                index_elements=["from_user_id", "to_username"],
                index_where=text("status = 'pending'"),
            )
            .returning(ConnectionRequestModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return mapper.model_to_entity(row) if row is not None else None

    async def resolve(self, request_id: int, status: str) -> bool:
        result = await self._session.execute(
            update(ConnectionRequestModel)
            .where(
                ConnectionRequestModel.id == request_id,
                ConnectionRequestModel.status == RequestStatus.PENDING,
            )
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
