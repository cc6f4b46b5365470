from __future__ import annotations

from duo_chat.domain.entities.user import User
from duo_chat.infrastructure.db.models.user import UserModel


def model_to_entity(model: UserModel) -> User:
    return User(
        id=model.id,
        username=model.username,
        current_connection_id=model.current_connection_id,
        created_at=model.created_at,
    )
