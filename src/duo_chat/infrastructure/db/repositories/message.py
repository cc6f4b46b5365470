from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from duo_chat.domain.entities.message import Message
from duo_chat.domain.value_objects.enums import ConnectionStatus
from duo_chat.infrastructure.db.mappers import message as mapper
from duo_chat.infrastructure.db.models.connection import ConnectionModel
from duo_chat.infrastructure.db.models.message import MessageModel


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_page(
        self,
        connection_id: int,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Message]:
        # Page from the newest backwards, then hand it out oldest first.
        stmt = (
            select(MessageModel)
            .where(MessageModel.connection_id == connection_id)
            .order_by(MessageModel.timestamp.desc(), MessageModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        page = [mapper.model_to_entity(m) for m in result.scalars().all()]
        page.reverse()
        return page


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        connection_id: int,
        sender_id: int,
        content: str,
        timestamp: datetime,
    ) -> Message | None:
        """Insert the message only while the connection is connected.

        ``SELECT .. FOR SHARE`` on the connection row makes a concurrent
        ``end()`` wait for this transaction. If the connection ended first,
        nothing is inserted and ``None`` is returned.
        """
        result = await self._session.execute(
            select(ConnectionModel.id)
            .where(
                ConnectionModel.id == connection_id,
                ConnectionModel.status == ConnectionStatus.CONNECTED,
            )
            .with_for_update(read=True)
        )
        if result.scalar_one_or_none() is None:
            return None

        model = MessageModel(
            connection_id=connection_id,
            sender_id=sender_id,
            content=content,
            timestamp=timestamp,
        )
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)
