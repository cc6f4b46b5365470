from __future__ import annotations

from duo_chat.domain.entities.connection import Connection
from duo_chat.infrastructure.db.models.connection import ConnectionModel


def model_to_entity(model: ConnectionModel) -> Connection:
    return Connection(
        id=model.id,
        user_a_id=model.user_a_id,
        user_b_id=model.user_b_id,
        status=model.status,
        created_at=model.created_at,
        connected_at=model.connected_at,
        disconnected_at=model.disconnected_at,
        ended_by_user_id=model.ended_by_user_id,
        end_reason=model.end_reason,
    )
