from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from duo_chat.api.v1.schemas.message import MessageResponse


class ConnectionResponse(BaseModel):
    id: int
    user_a_id: int
    user_b_id: int
    status: str
    created_at: datetime
    connected_at: datetime | None = None
    disconnected_at: datetime | None = None
    ended_by_user_id: int | None = None
    end_reason: str | None = None

    model_config = {"from_attributes": True}


class PeerResponse(BaseModel):
    id: int
    username: str

    model_config = {"from_attributes": True}


class CurrentConnectionResponse(BaseModel):
    connection: ConnectionResponse
    peer: PeerResponse | None
    recent_messages: list[MessageResponse]

    model_config = {"from_attributes": True}
