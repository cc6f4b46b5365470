from __future__ import annotations

from duo_chat.domain.entities.message import Message
from duo_chat.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        connection_id=model.connection_id,
        sender_id=model.sender_id,
        content=model.content,
        timestamp=model.timestamp,
    )
