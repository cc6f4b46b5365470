from __future__ import annotations

from duo_chat.domain.entities.connection_request import ConnectionRequest
from duo_chat.infrastructure.db.models.connection_request import ConnectionRequestModel


def model_to_entity(
    model: ConnectionRequestModel,
    from_username: str | None = None,
) -> ConnectionRequest:
    return ConnectionRequest(
        id=model.id,
        from_user_id=model.from_user_id,
        to_username=model.to_username,
        status=model.status,
        created_at=model.created_at,
        from_username=from_username,
    )
